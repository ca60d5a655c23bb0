import math
import pytest
import torch as th

from myotorque.characteristics import Characteristics
from myotorque.geometry import Geometry, MusclePoint
from myotorque.muscle import MuscleType
from myotorque.muscles import Muscles
from myotorque.skeleton import PlanarChain, TwoDofArm
from myotorque.wrapping import PathModifiers, WrappingCylinder


@pytest.fixture
def arm():
  return TwoDofArm()


@pytest.fixture
def arm_muscles(arm):
  """Two Thelen muscles spanning the elbow on a two degrees-of-freedom arm."""
  muscles = Muscles(arm)
  group = muscles.add_muscle_group('elbow', 'upper_arm', 'forearm')
  group.add_muscle(
    'flexor',
    MuscleType.HILL_THELEN,
    Geometry(MusclePoint((0.1, 0.03, 0.), 'flexor_origin', 'upper_arm'),
             MusclePoint((0.05, 0.02, 0.), 'flexor_insertion', 'forearm')),
    Characteristics(optimal_length=0.15, force_iso_max=500., tendon_slack_length=0.05),
  )
  group.add_muscle(
    'extensor',
    MuscleType.HILL_THELEN,
    Geometry(MusclePoint((0.1, -0.03, 0.), 'extensor_origin', 'upper_arm'),
             MusclePoint((0.05, -0.02, 0.), 'extensor_insertion', 'forearm')),
    Characteristics(optimal_length=0.15, force_iso_max=800., tendon_slack_length=0.05),
  )
  return muscles


@pytest.fixture
def rooted_muscles():
  """One idealized actuator on a single segment whose base translates in the plane."""
  chain = PlanarChain([1.], root_translation=True)
  muscles = Muscles(chain)
  group = muscles.add_muscle_group('single', 'base', 'segment_1')
  group.add_muscle(
    'actuator',
    MuscleType.IDEALIZED_ACTUATOR,
    Geometry(MusclePoint((0., 0.5, 0.), 'origin', 'base'), MusclePoint((1., 0., 0.), 'insertion', 'segment_1')),
    Characteristics(force_iso_max=100.),
  )
  return muscles


@pytest.fixture
def arm_q():
  return th.tensor([0.4, 1.2], dtype=th.float64)


@pytest.fixture
def wrapped_muscles():
  """One idealized actuator wrapping around a unit-radius cylinder at the base of a single segment. At q = 0 the path
  leaves the cylinder symmetrically, at q = pi both attachments lie on the same side and the path does not wrap."""
  chain = PlanarChain([1.])
  muscles = Muscles(chain)
  group = muscles.add_muscle_group('single', 'base', 'segment_1')
  path = PathModifiers()
  path.add_path_object(WrappingCylinder(diameter=2., positive_sign=True, name='cylinder', parent='base'))
  group.add_muscle(
    'actuator',
    MuscleType.IDEALIZED_ACTUATOR,
    Geometry(MusclePoint((0., math.sqrt(2.), 0.), 'origin', 'base'),
             MusclePoint((0., -math.sqrt(2.), 0.), 'insertion', 'segment_1')),
    Characteristics(force_iso_max=100.),
    path,
  )
  return muscles
