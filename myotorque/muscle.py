import copy
import logging
import math
import torch as th
from enum import Enum
from torch.nn.parameter import Parameter
from myotorque.characteristics import Characteristics
from myotorque.errors import ConfigurationError, UnsupportedVariantError
from myotorque.fatigue import FatigueState, fatigue_state_from_config
from myotorque.geometry import Geometry, MusclePoint
from myotorque.state import State, StateDynamics, StateType, state_from_config
from myotorque.utils import DTYPE, DEVICE, to_tensor
from myotorque.wrapping import PathModifiers, WrappingCylinder


logger = logging.getLogger(__name__)


class MuscleType(Enum):
  IDEALIZED_ACTUATOR = 'idealizedactuator'
  HILL = 'hill'
  HILL_THELEN = 'hillthelen'
  HILL_THELEN_FATIGABLE = 'hillthelenfatigable'

  @classmethod
  def from_string(cls, name: str):
    """Case-insensitive lookup of a muscle type. Underscores, dashes and spaces are ignored, and the `"hil"` and
    `"thelen"` short names are accepted.

    Raises:
      UnsupportedVariantError: If no muscle type goes by that name.
    """
    if isinstance(name, cls):
      return name
    key = str(name).casefold().replace('_', '').replace('-', '').replace(' ', '')
    key = {'hil': 'hill', 'thelen': 'hillthelen', 'thelenfatigable': 'hillthelenfatigable'}.get(key, key)
    try:
      return cls(key)
    except ValueError:
      raise UnsupportedVariantError(f'"{name}" is not a valid muscle type.') from None


class ForceModel(th.nn.Module):
  """Base class for the force-generation laws of a muscle. A force model maps an activation level and the current
  muscle geometry onto the norm of the force produced by the muscle.

  The constants of a force model are stored as non-trainable `Parameter` objects, with defaults listed in the
  :attr:`defaults` dictionary of each subclass. Any of them can be overridden by keyword at construction.

  Args:
    **kwargs: Values overriding the default constants.

  Raises:
    ConfigurationError: If a keyword does not match any constant of the model.
  """

  defaults = {}

  def __init__(self, **kwargs):
    super().__init__()
    unknown = set(kwargs) - set(self.defaults)
    if unknown:
      raise ConfigurationError(f'Unexpected constant(s) for {self.__class__.__name__}: {sorted(unknown)}.')
    self.__name__ = self.__class__.__name__
    for key, default in self.defaults.items():
      value = kwargs.get(key, default)
      setattr(self, key, Parameter(th.tensor(value, dtype=DTYPE, device=DEVICE), requires_grad=False))

  def check_characteristics(self, characteristics: Characteristics):
    return

  def force_from_activation(self, activation, geometry: Geometry, characteristics: Characteristics, fatigue_state=None):
    """Computes the norm of the muscle force.

    Args:
      activation: `Float`, the muscle activation, normalized by the maximal activation.
      geometry: :class:`myotorque.geometry.Geometry`, the up-to-date muscle geometry.
      characteristics: :class:`myotorque.characteristics.Characteristics`, the muscle characteristics.
      fatigue_state: :class:`myotorque.fatigue.FatigueState`, the muscle fatigue state, if any.

    Returns:
      A scalar `tensor`.
    """
    return self._force_from_activation(to_tensor(activation), geometry, characteristics, fatigue_state)

  def _force_from_activation(self, activation, geometry, characteristics, fatigue_state):
    raise NotImplementedError

  def compute_flce(self, length, activation, characteristics):
    raise UnsupportedVariantError(f'{self.__name__} has no force-length relationship.')

  def compute_flpe(self, length, characteristics):
    raise UnsupportedVariantError(f'{self.__name__} has no passive force-length relationship.')

  def compute_fvce(self, velocity, characteristics):
    raise UnsupportedVariantError(f'{self.__name__} has no force-velocity relationship.')

  def compute_damping(self, velocity, characteristics):
    raise UnsupportedVariantError(f'{self.__name__} has no damping.')

  def get_save_config(self):
    return {key: getattr(self, key).item() for key in self.defaults}


class IdealizedActuatorModel(ForceModel):
  """A force generator whose force is linear with activation, regardless of the muscle length and velocity:

  .. math::
    F = m * activation

  with :math:`m` the maximal isometric force of the muscle.
  """

  def _force_from_activation(self, activation, geometry, characteristics, fatigue_state):
    return characteristics.force_iso_max * activation


class HillTypeModel(ForceModel):
  """A Hill-type muscle, whose force is the sum of an active contractile element (CE), a passive elastic element (PE)
  and a damping term:

  .. math::
    F = m * (activation * FlCE * FvCE + FlPE + damping)

  with :math:`m` the maximal isometric force of the muscle. The optimal length of the contractile element shifts with
  activation, which lengthens it at low activation levels.

  Raises:
    ConfigurationError: When computing a force if the optimal length of the muscle is not positive.
  """

  defaults = {
    'flce_1': 0.15,
    'flce_2': 0.45,
    'fvce_1': 1.,
    'fvce_2': -0.33 / 2 * 1. / (1. + 1.),
    'flpe_1': 10.,
    'flpe_2': 5.,
    'eccentric_force_multiplier': 1.8,
    'damping': 0.1,
    'max_shortening_speed': 10.,
  }

  def __init__(self, **kwargs):
    if 'fvce_1' in kwargs and 'fvce_2' not in kwargs:
      kwargs['fvce_2'] = -0.33 / 2 * kwargs['fvce_1'] / (1 + kwargs['fvce_1'])
    super().__init__(**kwargs)

  def check_characteristics(self, characteristics):
    if characteristics.optimal_length <= 0:
      raise ConfigurationError(f'{self.__name__} requires a positive optimal length, got '
                               f'{characteristics.optimal_length}.')

  def compute_flce(self, length, activation, characteristics):
    norm_length = length / characteristics.optimal_length / (self.flce_1 * (1 - activation) + 1)
    return th.exp(-(norm_length - 1) ** 2 / self.flce_2)

  def compute_flpe(self, length, characteristics):
    if length <= characteristics.tendon_slack_length:
      return th.zeros((), dtype=DTYPE)
    return (th.exp(self.flpe_2 * (length / characteristics.optimal_length - 1)) - 1) / (th.exp(self.flpe_2) - 1)

  def compute_fvce(self, velocity, characteristics):
    v = velocity / self.max_shortening_speed
    if velocity <= 0:
      return (1 - th.abs(v)) / (1 + th.abs(v) / self.fvce_1)
    return (1 - self.eccentric_force_multiplier * v / self.fvce_2) / (1 - v / self.fvce_2)

  def compute_damping(self, velocity, characteristics):
    return velocity / self.max_shortening_speed * self.damping

  def active_level(self, activation, fatigue_state):
    return activation

  def _force_from_activation(self, activation, geometry, characteristics, fatigue_state):
    self.check_characteristics(characteristics)
    length = geometry.length()
    velocity = geometry.velocity()
    flce = self.compute_flce(length, activation, characteristics)
    fvce = self.compute_fvce(velocity, characteristics)
    flpe = self.compute_flpe(length, characteristics)
    damping = self.compute_damping(velocity, characteristics)
    active = self.active_level(activation, fatigue_state)
    return characteristics.force_iso_max * (active * flce * fvce + flpe + damping)


class HillThelenTypeModel(HillTypeModel):
  """A :class:`HillTypeModel` using the force-length relationships described in `[1]`. The optimal length of the
  contractile element does not depend on activation.

  References:
    [1] `Thelen DG. Adjustment of muscle mechanics model parameters to simulate dynamic contractions in older
    adults. J Biomech Eng. 2003 Feb;125(1):70-7. doi: 10.1115/1.1531112. PMID: 12661198.`
  """

  def compute_flce(self, length, activation, characteristics):
    return th.exp(-(length / characteristics.optimal_length - 1) ** 2 / self.flce_2)

  def compute_flpe(self, length, characteristics):
    if length <= characteristics.tendon_slack_length:
      return th.zeros((), dtype=DTYPE)
    return (th.exp(self.flpe_1 * (length / characteristics.optimal_length - 1)) - 1) / (th.exp(self.flpe_2) - 1)


class HillThelenTypeFatigableModel(HillThelenTypeModel):
  """A :class:`HillThelenTypeModel` whose active force is produced by the active fibers of the muscle's fatigue
  state only, in place of the activation level.
  """

  def active_level(self, activation, fatigue_state):
    if fatigue_state is None:
      raise ConfigurationError(f'{self.__name__} requires a fatigue state.')
    return fatigue_state.active_fibers


FORCE_MODELS = {
  MuscleType.IDEALIZED_ACTUATOR: IdealizedActuatorModel,
  MuscleType.HILL: HillTypeModel,
  MuscleType.HILL_THELEN: HillThelenTypeModel,
  MuscleType.HILL_THELEN_FATIGABLE: HillThelenTypeFatigableModel,
}


class Muscle(th.nn.Module):
  """A single musculotendon actuator attached to a skeleton.

  A muscle owns its geometry (origin, insertion and the resulting path), its physiological characteristics, its
  path modifiers (via points or a single wrapping cylinder), its dynamic state and, for fatigable muscles, its
  fatigue state. The force it produces is applied at the origin and at the insertion, along the path.

  Args:
    name: `String`, the name of the muscle.
    muscle_type: :class:`MuscleType` or `String`, which force model the muscle uses.
    geometry: :class:`myotorque.geometry.Geometry`, the origin and insertion of the muscle.
    characteristics: :class:`myotorque.characteristics.Characteristics`, the muscle characteristics.
    path_modifiers: :class:`myotorque.wrapping.PathModifiers`, the via points or wrapping object of the path. Each
      object is copied, so the muscle never shares a wrap cache with another muscle.
    state: :class:`myotorque.state.StateDynamics`, the dynamic state of the muscle. Defaults to an empty
      :class:`myotorque.state.StateDynamics`.
    fatigue_state: :class:`myotorque.fatigue.FatigueState`, the fatigue state of the muscle. Defaults to a fully
      rested :class:`myotorque.fatigue.FatigueState` for fatigable muscles, and `None` otherwise.
    **kwargs: Passed to the force model, to override its default constants.

  Raises:
    ConfigurationError: If the characteristics do not suit the force model, or if the path holds more than one
      wrapping object.
    UnsupportedVariantError: If the state is not a dynamic state.
  """

  def __init__(
    self,
    name: str = '',
    muscle_type: MuscleType | str = MuscleType.HILL_THELEN,
    geometry: Geometry | None = None,
    characteristics: Characteristics | None = None,
    path_modifiers: PathModifiers | None = None,
    state: StateDynamics | None = None,
    fatigue_state: FatigueState | None = None,
    **kwargs,
  ):
    super().__init__()
    self.__name__ = name
    self.type = MuscleType.from_string(muscle_type)
    self.force_model = FORCE_MODELS[self.type](**kwargs)
    self.geometry = Geometry() if geometry is None else geometry
    self.path_modifiers = PathModifiers()
    if path_modifiers is not None:
      for obj in path_modifiers:
        self.add_path_object(copy.deepcopy(obj))
    self.set_characteristics(Characteristics() if characteristics is None else characteristics)
    self.set_state(StateDynamics() if state is None else state)
    if fatigue_state is None and self.type == MuscleType.HILL_THELEN_FATIGABLE:
      fatigue_state = FatigueState()
    self.fatigue_state = fatigue_state
    self._force_norm = th.full((), math.nan, dtype=DTYPE)
    self._forces = [th.full((3,), math.nan, dtype=DTYPE), th.full((3,), math.nan, dtype=DTYPE)]

  @property
  def device(self):
    try:
      return next(self.parameters()).device
    except StopIteration:
      return DEVICE

  def set_characteristics(self, characteristics: Characteristics):
    self.force_model.check_characteristics(characteristics)
    self.characteristics = characteristics

  def set_force_iso_max(self, value: float):
    self.characteristics.set_force_iso_max(value)

  def set_state(self, state: StateDynamics):
    if not isinstance(state, StateDynamics):
      raise UnsupportedVariantError(f'Muscle "{self.__name__}" requires a dynamic state, got a '
                                    f'{state.type.value} state.')
    self.state = state

  def set_position(self, geometry: Geometry):
    self.geometry = geometry

  def add_path_object(self, obj):
    """Adds a via point or a wrapping cylinder at the end of the path modifiers. The muscle takes ownership of `obj`.

    Raises:
      ConfigurationError: If a wrapping cylinder is added to a path that already holds one.
    """
    if isinstance(obj, WrappingCylinder) and self.path_modifiers.nb_wraps >= 1:
      raise ConfigurationError(f'Muscle "{self.__name__}" already holds a wrapping object, only one is supported.')
    self.path_modifiers.add_path_object(obj)

  def update_orientations(self, model, q=None, qdot=None, update_kin: int = 2):
    """Recomputes the muscle path. See :meth:`myotorque.geometry.Geometry.update_kinematics`."""
    self.geometry.update_kinematics(model, self.characteristics, self.path_modifiers, q, qdot, update_kin)

  def update_orientations_from_points(self, points, point_jacobians, qdot=None):
    self.geometry.update_kinematics_from_points(points, point_jacobians, self.characteristics, qdot)

  def force(self, state: State) -> list[th.Tensor]:
    """Computes the forces applied by the muscle for the last computed geometry.

    Args:
      state: :class:`myotorque.state.State`, the muscle state providing the activation.

    Returns:
      A `list` of two `3`-elements tensors, the force at the origin, which points to the next path point, and the
      force at the insertion, which points to the previous path point.
    """
    activation = state.activation / self.characteristics.state_max.activation
    self._force_norm = self.force_model.force_from_activation(
      activation, self.geometry, self.characteristics, self.fatigue_state
    ).reshape(())

    points = self.geometry.muscles_points_in_global()
    to_next = points[1] - points[0]
    to_previous = points[-2] - points[-1]
    self._forces = [
      self._force_norm * to_next / th.linalg.norm(to_next),
      self._force_norm * to_previous / th.linalg.norm(to_previous),
    ]
    return self._forces

  def force_from_kinematics(self, model, q, qdot, state: State, update_kin: int = 2):
    self.update_orientations(model, q, qdot, update_kin)
    return self.force(state)

  def force_from_position(self, model, q, state: State, update_kin: int = 2):
    """Same as :meth:`force_from_kinematics`, for a muscle that does not move."""
    self.update_orientations(model, q, th.zeros(model.nb_q, dtype=DTYPE), update_kin)
    return self.force(state)

  def force_norm(self) -> th.Tensor:
    return self._force_norm

  def flce(self, state: State) -> th.Tensor:
    activation = state.activation / self.characteristics.state_max.activation
    return self.force_model.compute_flce(self.geometry.length(), to_tensor(activation), self.characteristics)

  def flpe(self) -> th.Tensor:
    return self.force_model.compute_flpe(self.geometry.length(), self.characteristics)

  def fvce(self) -> th.Tensor:
    return self.force_model.compute_fvce(self.geometry.velocity(), self.characteristics)

  def damping(self) -> th.Tensor:
    return self.force_model.compute_damping(self.geometry.velocity(), self.characteristics)

  def length(self, model=None, q=None, update_kin: int = 2) -> th.Tensor:
    if model is not None:
      self.update_orientations(model, q, update_kin=update_kin)
    return self.geometry.length()

  def musculotendon_length(self, model=None, q=None, update_kin: int = 2) -> th.Tensor:
    if model is not None:
      self.update_orientations(model, q, update_kin=update_kin)
    return self.geometry.musculotendon_length()

  def velocity(self, model=None, q=None, qdot=None, update_kin: int = 2) -> th.Tensor:
    if model is not None:
      self.update_orientations(model, q, qdot, update_kin)
    return self.geometry.velocity()

  def muscles_points_in_global(self, model=None, q=None, update_kin: int = 2) -> list[th.Tensor]:
    if model is not None:
      self.update_orientations(model, q, update_kin=update_kin)
    return self.geometry.muscles_points_in_global()

  def activation_dot(self, state: State, already_normalized: bool = False) -> float:
    """Time derivative of the activation, from the excitation and activation of `state`. The values of `state` are
    copied into the muscle's own state."""
    return self.state.time_derivative_activation_from_state(state, self.characteristics, already_normalized)

  def fatigue_state_dot(self, state: State):
    """Time derivatives of the fatigue state fractions, with the activation of `state` as command.

    Raises:
      UnsupportedVariantError: If the muscle has no dynamic fatigue state.
    """
    if not hasattr(self.fatigue_state, 'time_derivative_state'):
      raise UnsupportedVariantError(f'Muscle "{self.__name__}" has no dynamic fatigue state.')
    return self.fatigue_state.time_derivative_state(state, self.characteristics)

  def deep_copy(self):
    return copy.deepcopy(self)

  @classmethod
  def from_muscle(cls, other, muscle_type: MuscleType | str | None = None, **kwargs):
    """Builds a new muscle from an existing one, possibly of another type. The geometry, characteristics, path
    modifiers, state and fatigue state are deep-copied, so that the new muscle shares nothing with `other`.

    Args:
      other: :class:`Muscle`, the muscle to copy.
      muscle_type: :class:`MuscleType` or `String`, the type of the new muscle. Defaults to the type of `other`.
      **kwargs: Passed to the new force model. Defaults to the constants of `other` if it is of the same type.
    """
    muscle_type = other.type if muscle_type is None else MuscleType.from_string(muscle_type)
    if not kwargs and muscle_type == other.type:
      kwargs = other.force_model.get_save_config()
    return make_muscle(
      name=other.__name__,
      muscle_type=muscle_type,
      geometry=copy.deepcopy(other.geometry),
      characteristics=other.characteristics.deep_copy(),
      path_modifiers=other.path_modifiers,
      state=other.state.deep_copy(),
      fatigue_state=None if other.fatigue_state is None else other.fatigue_state.deep_copy(),
      **kwargs,
    )

  def get_save_config(self):
    cfg = {
      'name': self.__name__,
      'type': self.type.value,
      'geometry': self.geometry.get_save_config(),
      'characteristics': self.characteristics.get_save_config(),
      'path_modifiers': self.path_modifiers.get_save_config(),
      'state': self.state.get_save_config(),
      'constants': self.force_model.get_save_config(),
    }
    if self.fatigue_state is not None:
      cfg['fatigue_state'] = self.fatigue_state.get_save_config()
    return cfg


class IdealizedActuator(Muscle):
  def __init__(self, name: str = '', geometry=None, characteristics=None, path_modifiers=None, state=None, **kwargs):
    super().__init__(name, MuscleType.IDEALIZED_ACTUATOR, geometry, characteristics, path_modifiers, state, **kwargs)


class HillType(Muscle):
  def __init__(self, name: str = '', geometry=None, characteristics=None, path_modifiers=None, state=None, **kwargs):
    super().__init__(name, MuscleType.HILL, geometry, characteristics, path_modifiers, state, **kwargs)


class HillThelenType(Muscle):
  def __init__(self, name: str = '', geometry=None, characteristics=None, path_modifiers=None, state=None, **kwargs):
    super().__init__(name, MuscleType.HILL_THELEN, geometry, characteristics, path_modifiers, state, **kwargs)


class HillThelenTypeFatigable(Muscle):
  def __init__(
    self,
    name: str = '',
    geometry=None,
    characteristics=None,
    path_modifiers=None,
    state=None,
    fatigue_state=None,
    **kwargs,
  ):
    super().__init__(
      name, MuscleType.HILL_THELEN_FATIGABLE, geometry, characteristics, path_modifiers, state, fatigue_state,
      **kwargs,
    )


MUSCLES = {
  MuscleType.IDEALIZED_ACTUATOR: IdealizedActuator,
  MuscleType.HILL: HillType,
  MuscleType.HILL_THELEN: HillThelenType,
  MuscleType.HILL_THELEN_FATIGABLE: HillThelenTypeFatigable,
}


def make_muscle(
  name: str = '',
  muscle_type: MuscleType | str = MuscleType.HILL_THELEN,
  geometry: Geometry | None = None,
  characteristics: Characteristics | None = None,
  path_modifiers: PathModifiers | None = None,
  state: StateDynamics | None = None,
  fatigue_state: FatigueState | None = None,
  **kwargs,
) -> Muscle:
  """Builds a muscle of the class matching `muscle_type`."""
  muscle_type = MuscleType.from_string(muscle_type)
  if muscle_type == MuscleType.HILL_THELEN_FATIGABLE:
    kwargs['fatigue_state'] = fatigue_state
  elif fatigue_state is not None:
    logger.warning(f'Muscle "{name}" of type "{muscle_type.value}" is not fatigable, its fatigue state is ignored.')
  return MUSCLES[muscle_type](name, geometry, characteristics, path_modifiers, state, **kwargs)


def muscle_from_config(cfg: dict) -> Muscle:
  """Builds a muscle from a dictionary as returned by :meth:`Muscle.get_save_config`.

  Raises:
    ConfigurationError: If the dictionary holds an unexpected key.
  """
  cfg = dict(cfg)
  expected = {'name', 'type', 'geometry', 'characteristics', 'path_modifiers', 'state', 'constants', 'fatigue_state'}
  unknown = set(cfg) - expected
  if unknown:
    raise ConfigurationError(f'Unexpected key(s) in muscle configuration: {sorted(unknown)}.')

  geometry_cfg = cfg.get('geometry', {})
  try:
    geometry = Geometry(
      origin=MusclePoint(**geometry_cfg.get('origin', {})),
      insertion=MusclePoint(**geometry_cfg.get('insertion', {})),
    )
  except TypeError as e:
    raise ConfigurationError(f'Invalid muscle geometry configuration: {e}') from e

  fatigue_cfg = cfg.get('fatigue_state')
  return make_muscle(
    name=cfg.get('name', ''),
    muscle_type=cfg.get('type', MuscleType.HILL_THELEN),
    geometry=geometry,
    characteristics=Characteristics.from_config(cfg.get('characteristics', {})),
    path_modifiers=PathModifiers.from_config(cfg.get('path_modifiers', [])),
    state=state_from_config(cfg.get('state', {'type': StateType.DYNAMIC.value})),
    fatigue_state=None if fatigue_cfg is None else fatigue_state_from_config(fatigue_cfg),
    **cfg.get('constants', {}),
  )
