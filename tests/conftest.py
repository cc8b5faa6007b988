import numpy as np
import pytest

BLUE = (255, 0, 0)
GREEN = (0, 255, 0)
RED = (0, 0, 255)


def make_frame(height=80, width=80, color=(0, 0, 0)):
    frame = np.zeros((height, width, 3), dtype=np.uint8)
    frame[:, :] = color
    return frame


@pytest.fixture
def blue_square_frame():
    # 30x30 pure blue square on black.
    frame = make_frame()
    frame[20:50, 20:50] = BLUE
    return frame


@pytest.fixture
def palette_frame():
    # Primaries, secondaries and neutrals; none sits on the hue wraparound.
    colors = [
        (0, 0, 255),
        (0, 255, 0),
        (255, 0, 0),
        (0, 255, 255),
        (255, 255, 0),
        (255, 0, 255),
        (255, 255, 255),
        (0, 0, 0),
        (40, 120, 200),
        (200, 60, 30),
        (90, 200, 90),
        (64, 64, 64),
    ]
    frame = np.zeros((len(colors), 4, 3), dtype=np.uint8)
    for row, color in enumerate(colors):
        frame[row, :] = color
    return frame
