import torch as th
from torch.nn.parameter import Parameter
from myotorque.errors import ConfigurationError, DimensionMismatchError
from myotorque.utils import DTYPE, to_tensor, transpose_rt, apply_rt
from myotorque.wrapping import ViaPoint, WrappingCylinder


class MusclePoint(th.nn.Module):
  """An attachment point of a muscle (origin or insertion), fixed on a parent segment.

  Args:
    position: `Tensor`, `list` or `tuple`, the `xyz` position of the point in its parent segment's frame.
    name: `String`, the name of the point.
    parent: `String`, the name of the parent segment.
  """

  def __init__(self, position=(0., 0., 0.), name: str = '', parent: str = ''):
    super().__init__()
    self.__name__ = name
    self.parent = parent
    self.position = Parameter(to_tensor(position).reshape(3), requires_grad=False)

  def set_position(self, position):
    self.position.data = to_tensor(position).reshape(3)

  def get_save_config(self):
    return {'name': self.__name__, 'parent': self.parent, 'position': self.position.tolist()}


class Geometry(th.nn.Module):
  """Evaluates the path of a single muscle for the current kinematics of a skeleton: the position of every path
  point in the global frame, the musculotendon and muscle lengths, the length jacobian and the muscle velocity.

  The path goes from the origin to the insertion, through the via points in order. If the path holds a wrapping
  cylinder instead, it goes from the origin to the first leave point, around the cylinder, then from the second
  leave point to the insertion.

  Args:
    origin: :class:`MusclePoint`, the origin of the muscle.
    insertion: :class:`MusclePoint`, the insertion of the muscle.
  """

  def __init__(self, origin: MusclePoint | None = None, insertion: MusclePoint | None = None):
    super().__init__()
    self.origin = MusclePoint() if origin is None else origin
    self.insertion = MusclePoint() if insertion is None else insertion
    self._points = None
    self._point_jacobians = None
    self._musculotendon_length = None
    self._length = None
    self._velocity = None
    self._jacobian_length = None

  def update_kinematics(
    self,
    model,
    characteristics,
    path_modifiers=None,
    q=None,
    qdot=None,
    update_kin: int = 2,
  ):
    """Recomputes the muscle path.

    Args:
      model: :class:`myotorque.skeleton.Skeleton`, the skeleton the muscle is attached to.
      characteristics: :class:`myotorque.characteristics.Characteristics`, the muscle characteristics.
      path_modifiers: :class:`myotorque.wrapping.PathModifiers`, the via points and wrapping objects of the path.
      q: `Tensor`, the generalized coordinates.
      qdot: `Tensor`, the generalized velocities. When the path is recomputed without them, the muscle velocity is
        reset to `0`.
      update_kin: `Integer`, `0` to reuse the last computed path, `1` to recompute the path from the skeleton's
        current kinematics, or `2` to update the skeleton's kinematics with `q` and `qdot` first.

    Raises:
      ConfigurationError: If the path holds both via points and a wrapping object, or more than one wrapping object.
    """
    if update_kin >= 2 and q is not None:
      model.update_kinematics(q, qdot)

    if update_kin >= 1 or self._points is None:
      points, jacobians, arc, arc_segment = self._path(model, path_modifiers)
      self._set_path(points, jacobians, characteristics, arc, arc_segment)
      if qdot is None:
        self._reset_velocity()

    if qdot is not None:
      self._compute_velocity(qdot)

  def update_kinematics_from_points(self, points, point_jacobians, characteristics, qdot=None):
    """Recomputes the muscle path from path points already expressed in the global frame, ordered from origin to
    insertion, and their jacobians.

    Args:
      points: `List` of `Tensor`, the global position of each path point.
      point_jacobians: `List` of `Tensor`, the `3 x nb_q` jacobian of each path point.
      characteristics: :class:`myotorque.characteristics.Characteristics`, the muscle characteristics.
      qdot: `Tensor`, the generalized velocities.

    Raises:
      DimensionMismatchError: If there are not as many jacobians as points, or fewer than two points.
    """
    points = [to_tensor(p).reshape(3) for p in points]
    point_jacobians = [to_tensor(j).reshape(3, -1) for j in point_jacobians]
    if len(points) != len(point_jacobians):
      raise DimensionMismatchError(f'Got {len(points)} path points but {len(point_jacobians)} jacobians.')
    if len(points) < 2:
      raise DimensionMismatchError(f'A muscle path needs at least 2 points, got {len(points)}.')
    self._set_path(points, point_jacobians, characteristics)
    if qdot is None:
      self._reset_velocity()
    else:
      self._compute_velocity(qdot)

  def _path(self, model, path_modifiers):
    origin = model.point_in_global(self.origin.position, self.origin.parent)
    insertion = model.point_in_global(self.insertion.position, self.insertion.parent)
    origin_jacobian = model.point_jacobian(self.origin.position, self.origin.parent)
    insertion_jacobian = model.point_jacobian(self.insertion.position, self.insertion.parent)

    objects = [] if path_modifiers is None else list(path_modifiers)
    wraps = [obj for obj in objects if isinstance(obj, WrappingCylinder)]
    vias = [obj for obj in objects if isinstance(obj, ViaPoint)]
    if len(wraps) > 1:
      raise ConfigurationError(f'A muscle path can hold at most one wrapping object, got {len(wraps)}.')
    if wraps and vias:
      raise ConfigurationError('A muscle path cannot hold both via points and a wrapping object.')

    if wraps:
      cylinder = wraps[0]
      rt = cylinder.rt(model, update_kin=False)
      p1, p2, arc = cylinder.wrap_points(rt, origin, insertion)
      to_parent = transpose_rt(model.global_joint_transform(cylinder.parent))
      p1_jacobian = model.point_jacobian(apply_rt(to_parent, p1), cylinder.parent)
      p2_jacobian = model.point_jacobian(apply_rt(to_parent, p2), cylinder.parent)
      return [origin, p1, p2, insertion], [origin_jacobian, p1_jacobian, p2_jacobian, insertion_jacobian], arc, 1

    points = [origin]
    jacobians = [origin_jacobian]
    for via in vias:
      points.append(model.point_in_global(via.position, via.parent))
      jacobians.append(model.point_jacobian(via.position, via.parent))
    points.append(insertion)
    jacobians.append(insertion_jacobian)
    return points, jacobians, 0., None

  def _set_path(self, points, jacobians, characteristics, arc=0., arc_segment=None):
    # the arc_segment-th segment goes around the wrapping object and is accounted for by arc
    mt_length = th.tensor(arc, dtype=DTYPE)
    jacobian_length = th.zeros((1, jacobians[0].shape[1]), dtype=DTYPE)
    for i in range(len(points) - 1):
      if i == arc_segment:
        continue
      chord = points[i + 1] - points[i]
      norm = th.linalg.norm(chord)
      mt_length = mt_length + norm
      jacobian_length = jacobian_length + (chord / norm) @ (jacobians[i + 1] - jacobians[i])

    self._points = points
    self._point_jacobians = jacobians
    self._musculotendon_length = mt_length
    self._jacobian_length = jacobian_length
    pennation = th.tensor(characteristics.pennation_angle, dtype=DTYPE)
    self._length = (mt_length - characteristics.tendon_slack_length) / th.cos(pennation)

  def _reset_velocity(self):
    # a new path without velocities is a muscle standing still
    self._velocity = th.zeros((), dtype=DTYPE)

  def _compute_velocity(self, qdot):
    qdot = to_tensor(qdot).reshape(-1)
    if qdot.numel() != self._jacobian_length.shape[1]:
      raise DimensionMismatchError(
        f'Expected {self._jacobian_length.shape[1]} generalized velocities, got {qdot.numel()}.'
      )
    self._velocity = (self._jacobian_length @ qdot).reshape(())

  def _get(self, value, name):
    if value is None:
      raise ConfigurationError(f'The muscle {name} was read before the muscle geometry was computed.')
    return value

  def origin_in_global(self) -> th.Tensor:
    return self._get(self._points, 'origin')[0]

  def insertion_in_global(self) -> th.Tensor:
    return self._get(self._points, 'insertion')[-1]

  def muscles_points_in_global(self) -> list[th.Tensor]:
    return list(self._get(self._points, 'path points'))

  def musculotendon_length(self) -> th.Tensor:
    return self._get(self._musculotendon_length, 'musculotendon length')

  def length(self) -> th.Tensor:
    return self._get(self._length, 'length')

  def velocity(self) -> th.Tensor:
    return self._get(self._velocity, 'velocity')

  def jacobian_length(self) -> th.Tensor:
    """The `1 x nb_q` jacobian of the musculotendon length with respect to the generalized coordinates."""
    return self._get(self._jacobian_length, 'length jacobian')

  def jacobian(self) -> th.Tensor:
    """The jacobians of all path points, stacked into a `3 * n_points x nb_q` tensor."""
    return th.cat(self._get(self._point_jacobians, 'path jacobian'), dim=0)

  def get_save_config(self):
    return {'origin': self.origin.get_save_config(), 'insertion': self.insertion.get_save_config()}
