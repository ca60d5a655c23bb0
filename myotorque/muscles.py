import copy
import logging
import torch as th
from collections.abc import Sequence
from myotorque.errors import ConfigurationError, DimensionMismatchError, NotFoundError
from myotorque.fatigue import make_fatigue_state
from myotorque.muscle import Muscle, MuscleType, make_muscle, muscle_from_config
from myotorque.skeleton import Skeleton
from myotorque.state import State, make_state
from myotorque.utils import DTYPE, to_tensor


logger = logging.getLogger(__name__)


class MuscleGroup(th.nn.Module):
  """A set of muscles that share the same origin and insertion segments.

  Args:
    name: `String`, the name of the group.
    origin: `String`, the name of the segment the muscles originate from.
    insertion: `String`, the name of the segment the muscles insert on.
  """

  def __init__(self, name: str = '', origin: str = '', insertion: str = ''):
    super().__init__()
    self.__name__ = name
    self.origin = origin
    self.insertion = insertion
    self.muscle_list = th.nn.ModuleList()

  @property
  def nb_muscles(self) -> int:
    return len(self.muscle_list)

  def add_muscle(
    self,
    muscle: Muscle | str,
    muscle_type: MuscleType | str | None = None,
    geometry=None,
    characteristics=None,
    path_modifiers=None,
    state_type=None,
    fatigue_type=None,
    **kwargs,
  ) -> Muscle:
    """Adds a muscle to the group, either an existing :class:`myotorque.muscle.Muscle` or a new one built from its
    name and components.

    Args:
      muscle: :class:`myotorque.muscle.Muscle` to add, or `String`, the name of the muscle to build.
      muscle_type: :class:`myotorque.muscle.MuscleType` or `String`, the type of the muscle to build.
      geometry: :class:`myotorque.geometry.Geometry`, the origin and insertion of the muscle to build.
      characteristics: :class:`myotorque.characteristics.Characteristics` of the muscle to build.
      path_modifiers: :class:`myotorque.wrapping.PathModifiers` of the muscle to build.
      state_type: :class:`myotorque.state.StateType` or `String`, the state of the muscle to build. Defaults to a
        dynamic state.
      fatigue_type: :class:`myotorque.fatigue.FatigueType` or `String`, the fatigue state of the muscle to build.
      **kwargs: Passed to the force model of the muscle to build.

    Returns:
      The added muscle.
    """
    if not isinstance(muscle, Muscle):
      muscle = make_muscle(
        name=muscle,
        muscle_type=MuscleType.HILL_THELEN if muscle_type is None else muscle_type,
        geometry=geometry,
        characteristics=characteristics,
        path_modifiers=path_modifiers,
        state=make_state(state_type),
        fatigue_state=None if fatigue_type is None else make_fatigue_state(fatigue_type),
        **kwargs,
      )
    self.muscle_list.append(muscle)
    return muscle

  def muscle_id(self, name: str) -> int:
    """Returns the index of a muscle in the group, or `-1` if no muscle goes by that name."""
    for i, muscle in enumerate(self.muscle_list):
      if muscle.__name__ == name:
        return i
    return -1

  def muscle(self, idx: int | str) -> Muscle:
    """Returns a muscle from its index or name.

    Raises:
      NotFoundError: If the muscle does not exist in the group.
    """
    i = self.muscle_id(idx) if isinstance(idx, str) else int(idx)
    if i < 0 or i >= self.nb_muscles:
      raise NotFoundError(f'Muscle "{idx}" does not exist in muscle group "{self.__name__}".')
    return self.muscle_list[i]

  def __iter__(self):
    return iter(self.muscle_list)

  def deep_copy(self):
    return copy.deepcopy(self)

  def get_save_config(self):
    return {
      'name': self.__name__,
      'origin': self.origin,
      'insertion': self.insertion,
      'muscles': [muscle.get_save_config() for muscle in self.muscle_list],
    }


class Muscles(th.nn.Module):
  """All the muscle groups acting on a skeleton. This is the entry point to compute muscle forces and the joint
  torques they produce.

  Args:
    skeleton: :class:`myotorque.skeleton.Skeleton`, the skeleton providing the kinematics the muscles are attached
      to.
  """

  def __init__(self, skeleton: Skeleton):
    super().__init__()
    self.__name__ = 'Muscles'
    self.skeleton = skeleton
    self.groups = th.nn.ModuleList()

  @property
  def nb_muscle_groups(self) -> int:
    return len(self.groups)

  @property
  def nb_muscle_total(self) -> int:
    return sum(group.nb_muscles for group in self.groups)

  def add_muscle_group(self, name: str, origin: str, insertion: str) -> MuscleGroup:
    if self.get_group_id(name) >= 0:
      raise ConfigurationError(f'Muscle group "{name}" already exists.')
    group = MuscleGroup(name, origin, insertion)
    self.groups.append(group)
    return group

  def get_group_id(self, name: str) -> int:
    """Returns the index of a muscle group, or `-1` if no group goes by that name."""
    for i, group in enumerate(self.groups):
      if group.__name__ == name:
        return i
    return -1

  def muscle_group(self, idx: int | str) -> MuscleGroup:
    """Returns a muscle group from its index or name.

    Raises:
      NotFoundError: If the group does not exist.
    """
    i = self.get_group_id(idx) if isinstance(idx, str) else int(idx)
    if i < 0 or i >= self.nb_muscle_groups:
      raise NotFoundError(f'Muscle group "{idx}" does not exist.')
    return self.groups[i]

  def muscles(self) -> list[Muscle]:
    """All muscles, group after group, in insertion order."""
    return [muscle for group in self.groups for muscle in group]

  def muscle_names(self) -> list[str]:
    return [muscle.__name__ for muscle in self.muscles()]

  def update_muscles(self, q, qdot=None, update_kin: bool = True):
    """Recomputes the path of every muscle.

    Args:
      q: `Tensor`, the generalized coordinates.
      qdot: `Tensor`, the generalized velocities. Without them, every muscle velocity is reset to `0`.
      update_kin: `Boolean`, whether to update the skeleton's kinematics with `q` and `qdot` first. If `False`, the
        skeleton's current kinematics are used.
    """
    if update_kin:
      self.skeleton.update_kinematics(q, qdot)
    for muscle in self.muscles():
      muscle.update_orientations(self.skeleton, qdot=qdot, update_kin=1)

  def update_muscles_from_points(self, points: Sequence, jacobians: Sequence, qdot=None):
    """Recomputes the path of every muscle from path points already expressed in the global frame.

    Args:
      points: `List` with, for each muscle, the `list` of its path points from origin to insertion.
      jacobians: `List` with, for each muscle, the `list` of the jacobians of its path points.
      qdot: `Tensor`, the generalized velocities.

    Raises:
      DimensionMismatchError: If there are not as many entries as muscles.
    """
    muscles = self.muscles()
    if len(points) != len(muscles) or len(jacobians) != len(muscles):
      raise DimensionMismatchError(f'Expected path points and jacobians for {len(muscles)} muscles, got '
                                   f'{len(points)} and {len(jacobians)}.')
    for muscle, muscle_points, muscle_jacobians in zip(muscles, points, jacobians):
      muscle.update_orientations_from_points(muscle_points, muscle_jacobians, qdot)

  def muscles_length_jacobian(self, q=None) -> th.Tensor:
    """The `n_muscles x nb_q` jacobian of the musculotendon lengths. The muscle paths are recomputed first if `q` is
    provided."""
    if q is not None:
      self.update_muscles(q, update_kin=True)
    muscles = self.muscles()
    if not muscles:
      return th.zeros((0, self.skeleton.nb_q), dtype=DTYPE)
    return th.cat([muscle.geometry.jacobian_length() for muscle in muscles], dim=0)

  def muscles_forces(self, states: Sequence[State], update_kin: bool = True, q=None, qdot=None) -> th.Tensor:
    """Computes the force of every muscle. Each muscle also keeps the forces applied at its origin and insertion,
    see :meth:`myotorque.muscle.Muscle.force`.

    Args:
      states: `List` of :class:`myotorque.state.State`, one per muscle.
      update_kin: `Boolean`, whether to recompute the muscle paths for `q` and `qdot` first.
      q: `Tensor`, the generalized coordinates.
      qdot: `Tensor`, the generalized velocities.

    Returns:
      A `n_muscles` tensor of force norms.

    Raises:
      DimensionMismatchError: If there are not as many states as muscles.
    """
    muscles = self.muscles()
    if len(states) != len(muscles):
      raise DimensionMismatchError(f'Expected {len(muscles)} muscle states, got {len(states)}.')
    if update_kin:
      self._update_for_torque(q, qdot)
    for muscle, state in zip(muscles, states):
      muscle.force(state)
    if not muscles:
      return th.zeros(0, dtype=DTYPE)
    return th.stack([muscle.force_norm() for muscle in muscles])

  def muscular_joint_torque(self, f, update_kin: bool = True, q=None, qdot=None) -> th.Tensor:
    """Computes the generalized forces produced by the given muscle forces, using the virtual work principle:

    .. math::
      \\tau = -J^T F

    with :math:`J` the jacobian of the musculotendon lengths.

    Args:
      f: `Tensor`, `list` or `numpy.ndarray`, the force norm of each muscle.
      update_kin: `Boolean`, whether to recompute the muscle paths for `q` and `qdot` first.
      q: `Tensor`, the generalized coordinates. Required if `update_kin` is `True`.
      qdot: `Tensor`, the generalized velocities.

    Returns:
      A `nb_q` tensor.

    Raises:
      DimensionMismatchError: If there are not as many forces as muscles.
      ValueError: If `update_kin` is `True` but `q` is not provided.
    """
    f = to_tensor(f).reshape(-1)
    if f.numel() != self.nb_muscle_total:
      raise DimensionMismatchError(f'Expected {self.nb_muscle_total} muscle forces, got {f.numel()}.')
    if update_kin:
      self._update_for_torque(q, qdot)
    return -self.muscles_length_jacobian().transpose(0, 1) @ f

  def muscular_joint_torque_from_states(
    self,
    states: Sequence[State],
    update_kin: bool = True,
    q=None,
    qdot=None,
    return_forces: bool = False,
  ):
    """Same as :meth:`muscular_joint_torque`, with the muscle forces computed from the muscle states.

    Returns:
      The `nb_q` generalized forces tensor, and the `n_muscles` force norms tensor if `return_forces` is `True`.
    """
    forces = self.muscles_forces(states, update_kin, q, qdot)
    torque = self.muscular_joint_torque(forces, update_kin=False)
    return (torque, forces) if return_forces else torque

  def _update_for_torque(self, q, qdot):
    if q is None:
      raise ValueError('Generalized coordinates must be provided to update the muscle kinematics.')
    self.update_muscles(q, qdot, update_kin=True)

  def deep_copy(self):
    """A fully independent copy, including the skeleton."""
    return copy.deepcopy(self)

  def get_save_config(self):
    return {
      'skeleton': self.skeleton.get_save_config(),
      'groups': [group.get_save_config() for group in self.groups],
    }

  @classmethod
  def from_config(cls, cfg: dict, skeleton: Skeleton):
    """Builds the muscles from a dictionary as returned by :meth:`get_save_config`, attached to `skeleton`.

    Raises:
      ConfigurationError: If the dictionary holds an unexpected key.
    """
    unknown = set(cfg) - {'skeleton', 'groups'}
    if unknown:
      raise ConfigurationError(f'Unexpected key(s) in muscles configuration: {sorted(unknown)}.')
    muscles = cls(skeleton)
    for group_cfg in cfg.get('groups', []):
      unknown = set(group_cfg) - {'name', 'origin', 'insertion', 'muscles'}
      if unknown:
        raise ConfigurationError(f'Unexpected key(s) in muscle group configuration: {sorted(unknown)}.')
      group = muscles.add_muscle_group(group_cfg.get('name', ''), group_cfg.get('origin', ''),
                                       group_cfg.get('insertion', ''))
      for muscle_cfg in group_cfg.get('muscles', []):
        group.add_muscle(muscle_from_config(muscle_cfg))
    logger.debug(f'Built {muscles.nb_muscle_total} muscles in {muscles.nb_muscle_groups} groups from configuration.')
    return muscles
