"""modelrelay - multi-model chat relay with web augmentation and code agents."""

__version__ = "1.0.0"
