"""Data-parallel histogram equalisation for grey, RGB and HSL images."""

__version__ = "1.0.0"
