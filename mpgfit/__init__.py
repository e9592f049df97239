# mpgfit/__init__.py

"""
mpgfit: train a small regression network that predicts miles-per-gallon
from horsepower, watch it train, and save/load the result as a
manifest+weights pair.
"""

__version__ = "0.1.0"

from . import config, data, normalize, models, train, evaluate, model_io
