"""
A PyTorch-powered python toolbox to compute musculotendon forces and the joint torques they produce on a skeleton.
"""

from importlib import metadata

__name__ = "myotorque"
__version__ = metadata.version("myotorque")

from . import errors
from . import state
from . import fatigue
from . import characteristics
from . import skeleton
from . import wrapping
from . import geometry
from . import muscle
from . import muscles
from . import batch
