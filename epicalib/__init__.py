"""ABC calibration of a date-stepped stochastic epidemic simulator."""

__version__ = "0.1.0"
