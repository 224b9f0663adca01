"""
Image I/O helpers.

Thin wrappers around PIL and scikit-image for consistent image loading
and grayscale conversion.
"""

import numpy as np
from PIL import Image
from skimage.color import rgb2gray


def load_image(path: str) -> np.ndarray:
    """Load an image as a uint8 RGB array.

    Parameters
    ----------
    path : str
        File path to the image.

    Returns
    -------
    np.ndarray
        H x W x 3 uint8 array.

    Raises
    ------
    FileNotFoundError
        *path* does not exist.
    PIL.UnidentifiedImageError
        The file is not a readable image.
    """
    with Image.open(path) as im:
        return np.array(im.convert("RGB"))


def to_grayscale(img: np.ndarray) -> np.ndarray:
    """Convert a uint8 RGB image to a float64 grayscale image in [0, 1]."""
    return rgb2gray(img)


def load_grayscale(path: str) -> np.ndarray:
    """Load an image straight to float64 grayscale in [0, 1]."""
    return to_grayscale(load_image(path))

