import logging
import math
import torch as th
from torch.nn.parameter import Parameter
from myotorque.errors import ConfigurationError, NotFoundError
from myotorque.utils import DTYPE, to_tensor, transpose_rt, apply_rt


logger = logging.getLogger(__name__)


class ViaPoint(th.nn.Module):
  """A point fixed on a segment that a muscle path goes through.

  Args:
    position: `Tensor`, `list` or `tuple`, the `xyz` position of the point in its parent segment's frame.
    name: `String`, the name of the via point.
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
    return {'type': 'via_point', 'name': self.__name__, 'parent': self.parent, 'position': self.position.tolist()}


class WrappingCylinder(th.nn.Module):
  """A cylinder that a muscle path wraps around, attached to a parent segment. The cylinder's axis is the `z` axis of
  its own frame. Seen from above (along that axis), the muscle can go around the cylinder on the positive side
  (`x > 0`) or on the negative side (`x < 0`) of that frame.

  The muscle only engages the cylinder when its straight path would cross it. Otherwise, the leave points are set to
  `NaN`, and so is everything that is computed from them downstream.

  Args:
    rt_to_parent: `Tensor`, the `4 x 4` homogeneous transform of the cylinder frame in the parent segment's frame.
    diameter: `Float`, diameter of the cylinder (m).
    length: `Float`, length of the cylinder (m), along its axis.
    positive_sign: `Boolean`, whether the muscle goes around the positive (`True`) or negative (`False`) side.
    name: `String`, the name of the cylinder.
    parent: `String`, the name of the parent segment.
  """

  def __init__(
    self,
    rt_to_parent=None,
    diameter: float = 0.,
    length: float = 0.,
    positive_sign: bool = True,
    name: str = '',
    parent: str = '',
  ):
    super().__init__()
    self.__name__ = name
    self.parent = parent
    self.positive_sign = positive_sign
    rt_to_parent = th.eye(4, dtype=DTYPE) if rt_to_parent is None else to_tensor(rt_to_parent)
    self.rt_to_parent = Parameter(rt_to_parent.reshape(4, 4), requires_grad=False)
    self.set_diameter(diameter)
    self.set_length(length)
    self._rt = None
    self._p1_wrap = th.full((3,), math.nan, dtype=DTYPE)
    self._p2_wrap = th.full((3,), math.nan, dtype=DTYPE)
    self._length_around_wrap = math.nan

  @property
  def diameter(self) -> float:
    return self._diameter

  @property
  def radius(self) -> float:
    return self._diameter / 2

  @property
  def length(self) -> float:
    return self._length

  def set_diameter(self, value: float):
    if value < 0:
      raise ConfigurationError(f'Diameter of wrapping cylinder "{self.__name__}" cannot be negative, got {value}.')
    self._diameter = float(value)

  def set_length(self, value: float):
    if value < 0:
      raise ConfigurationError(f'Length of wrapping cylinder "{self.__name__}" cannot be negative, got {value}.')
    self._length = float(value)

  def rt(self, model, q=None, update_kin: bool = True) -> th.Tensor:
    """Computes the transform of the cylinder in the global frame.

    Args:
      model: :class:`myotorque.skeleton.Skeleton`, the skeleton holding the parent segment.
      q: `Tensor`, the generalized coordinates. Only used if `update_kin` is `True`.
      update_kin: `Boolean`, whether to update the skeleton's kinematics with `q` first.

    Raises:
      NotFoundError: If the parent segment does not exist in the skeleton.
    """
    if update_kin and q is not None:
      model.update_kinematics(q)
    if model.segment_index(self.parent) < 0:
      raise NotFoundError(f'Parent segment "{self.parent}" of wrapping cylinder "{self.__name__}" does not exist.')
    self._rt = model.global_joint_transform(self.parent) @ self.rt_to_parent
    return self._rt

  def wrap_points(self, rt: th.Tensor, p1_bone, p2_bone, compute_length: bool = True):
    """Computes the points where the muscle leaves the cylinder.

    Args:
      rt: `Tensor`, the `4 x 4` transform of the cylinder in the global frame, usually from :meth:`rt`.
      p1_bone: `Tensor`, the path point before the cylinder, in the global frame.
      p2_bone: `Tensor`, the path point after the cylinder, in the global frame.
      compute_length: `Boolean`, whether to compute the length of the path around the cylinder.

    Returns:
      A `tuple` with the two leave points in the global frame, and the length around the cylinder (or `None` if
      `compute_length` is `False`). If the muscle does not engage the cylinder, every value is `NaN`.
    """
    rt = to_tensor(rt)
    to_local = transpose_rt(rt)
    p1 = apply_rt(to_local, to_tensor(p1_bone))
    p2 = apply_rt(to_local, to_tensor(p2_bone))

    p1_tan = self._find_tangent_to_circle(p1)
    p2_tan = self._find_tangent_to_circle(p2)

    if self._check_if_wraps(p1, p2, p1_tan, p2_tan):
      p1_tan, p2_tan = self._find_vertical_node(p1, p2, p1_tan, p2_tan)
    else:
      logger.debug(f'Muscle path does not engage wrapping cylinder "{self.__name__}".')
      p1_tan = th.full((3,), math.nan, dtype=DTYPE)
      p2_tan = th.full((3,), math.nan, dtype=DTYPE)

    length = self._compute_length(p1_tan, p2_tan) if compute_length else None

    p1_wrap = apply_rt(rt, p1_tan)
    p2_wrap = apply_rt(rt, p2_tan)
    self._p1_wrap, self._p2_wrap = p1_wrap, p2_wrap
    if compute_length:
      self._length_around_wrap = length
    return p1_wrap, p2_wrap, length

  def wrap_points_from_model(self, model, q, p1_bone, p2_bone, compute_length: bool = True):
    """Same as :meth:`wrap_points`, using the cylinder's transform for the given generalized coordinates."""
    return self.wrap_points(self.rt(model, q), p1_bone, p2_bone, compute_length=compute_length)

  def last_wrap_points(self):
    """Returns the leave points and length from the last call to :meth:`wrap_points`, without recomputing them."""
    return self._p1_wrap, self._p2_wrap, self._length_around_wrap

  def _find_tangent_to_circle(self, p):
    r = self.radius
    p_xy = p[:2]
    p_dot = th.dot(p_xy, p_xy)
    q0 = r ** 2 / p_dot * p_xy
    rot90 = th.stack([-p_xy[1], p_xy[0]])
    t = r / p_dot * th.sqrt(p_dot - r ** 2) * rot90

    candidate_1 = p.clone()
    candidate_2 = p.clone()
    candidate_1[:2] = q0 + t
    candidate_2[:2] = q0 - t

    # the positive side keeps the tangent with the greatest x, the negative side the smallest
    if self.positive_sign:
      return candidate_2 if candidate_2[0] >= candidate_1[0] else candidate_1
    else:
      return candidate_2 if candidate_2[0] < candidate_1[0] else candidate_1

  def _check_if_wraps(self, p1, p2, p1_tan, p2_tan) -> bool:
    r = self.radius
    if self.positive_sign:
      if p1[0] > r and p2[0] > r:
        return False
    elif p1[0] < -r and p2[0] < -r:
      return False

    # both points on the same side of the cylinder axis
    if (p1[1] > 0 and p2[1] > 0) or (p1[1] < 0 and p2[1] < 0):
      return False

    if abs(p1[1]) < r or abs(p2[1]) < r:
      return False

    # the straight line between the points must go through the cylinder
    if (p1_tan[0] < p2_tan[0] and p1[0] > p2[0]) or (p1_tan[0] > p2_tan[0] and p1[0] < p2[0]):
      return False
    return True

  @staticmethod
  def _find_vertical_node(p1, p2, p1_tan, p2_tan):
    p1_tan = p1_tan.clone()
    p2_tan = p2_tan.clone()
    p1_tan[2] = 0.
    p2_tan[2] = 0.

    # frame whose x axis is the chord between the points, projected on the cylinder's cross-section
    z = th.tensor([0., 0., 1.], dtype=DTYPE)
    y = th.linalg.cross(z, p2 - p1)
    x = th.linalg.cross(y, z)
    rot = th.stack([x / th.linalg.norm(x), y / th.linalg.norm(y), z])

    glob_a = rot @ p1
    glob_b = rot @ p2
    wrap_a = rot @ p1_tan
    wrap_b = rot @ p2_tan

    dz = p1[2] - p2[2]
    p1_tan[2] = (wrap_a[0] - glob_b[0]) / (glob_a[0] - glob_b[0]) * dz + p2[2]
    p2_tan[2] = (wrap_b[0] - glob_b[0]) / (glob_a[0] - glob_b[0]) * dz + p2[2]
    return p1_tan, p2_tan

  def _compute_length(self, p1, p2) -> float:
    cos_arc = th.dot(p1[:2], p2[:2]) / th.sqrt(th.dot(p1[:2], p1[:2]) * th.dot(p2[:2], p2[:2]))
    arc = th.acos(th.clamp(cos_arc, -1., 1.)) * self.radius
    return float(th.sqrt(arc ** 2 + (p1[2] - p2[2]) ** 2))

  def get_save_config(self):
    return {
      'type': 'wrapping_cylinder',
      'name': self.__name__,
      'parent': self.parent,
      'rt_to_parent': self.rt_to_parent.tolist(),
      'diameter': self._diameter,
      'length': self._length,
      'positive_sign': self.positive_sign,
    }


class PathModifiers(th.nn.Module):
  """Ordered collection of the via points and wrapping objects along a muscle path, from origin to insertion."""

  def __init__(self):
    super().__init__()
    self.objects = th.nn.ModuleList()

  @property
  def nb_wraps(self) -> int:
    return sum(isinstance(obj, WrappingCylinder) for obj in self.objects)

  @property
  def nb_via_points(self) -> int:
    return sum(isinstance(obj, ViaPoint) for obj in self.objects)

  @property
  def nb_objects(self) -> int:
    return len(self.objects)

  def add_path_object(self, obj: ViaPoint | WrappingCylinder):
    if not isinstance(obj, (ViaPoint, WrappingCylinder)):
      raise TypeError(f'Path objects must be a ViaPoint or a WrappingCylinder, got {type(obj).__name__}.')
    self.objects.append(obj)

  def object(self, idx: int):
    if idx < 0 or idx >= self.nb_objects:
      raise NotFoundError(f'Path object index {idx} is out of range ({self.nb_objects} objects).')
    return self.objects[idx]

  def __iter__(self):
    return iter(self.objects)

  def get_save_config(self):
    return [obj.get_save_config() for obj in self.objects]

  @classmethod
  def from_config(cls, cfg: list):
    path_modifiers = cls()
    for obj_cfg in cfg:
      obj_cfg = dict(obj_cfg)
      obj_type = obj_cfg.pop('type', None)
      if obj_type not in PATH_OBJECTS:
        raise ConfigurationError(f'Unknown path object type "{obj_type}".')
      try:
        path_modifiers.add_path_object(PATH_OBJECTS[obj_type](**obj_cfg))
      except TypeError as e:
        raise ConfigurationError(f'Invalid {obj_type} configuration: {e}') from e
    return path_modifiers


PATH_OBJECTS = {
  'via_point': ViaPoint,
  'wrapping_cylinder': WrappingCylinder,
}
