import math
import pytest
import torch as th

from myotorque.characteristics import Characteristics
from myotorque.errors import ConfigurationError, DimensionMismatchError
from myotorque.geometry import Geometry, MusclePoint
from myotorque.skeleton import PlanarChain
from myotorque.wrapping import PathModifiers, ViaPoint, WrappingCylinder


SQRT2 = math.sqrt(2.)


@pytest.fixture
def chain():
  return PlanarChain([1.])


class TestStraightPath:

  def test_read_before_update(self):
    with pytest.raises(ConfigurationError):
      Geometry().length()

  def test_lengths(self, chain):
    geometry = Geometry(MusclePoint((0., 0.5, 0.), parent='base'), MusclePoint((1., 0., 0.), parent='segment_1'))
    characteristics = Characteristics(tendon_slack_length=0.2, pennation_angle=0.)
    geometry.update_kinematics(chain, characteristics, q=th.zeros(1))
    assert geometry.musculotendon_length().item() == pytest.approx(math.sqrt(1.25))
    assert geometry.length().item() == pytest.approx(math.sqrt(1.25) - 0.2)

  def test_pennation(self, chain):
    geometry = Geometry(MusclePoint((0., 0., 0.), parent='base'), MusclePoint((1., 0., 0.), parent='segment_1'))
    characteristics = Characteristics(tendon_slack_length=0.2, pennation_angle=math.pi / 3)
    geometry.update_kinematics(chain, characteristics, q=th.zeros(1))
    assert geometry.length().item() == pytest.approx(0.8 / 0.5)

  def test_jacobian_matches_finite_differences(self, arm, arm_q):
    geometry = Geometry(MusclePoint((0.1, 0.03, 0.), parent='upper_arm'),
                        MusclePoint((0.05, 0.02, 0.), parent='forearm'))
    characteristics = Characteristics()
    geometry.update_kinematics(arm, characteristics, q=arm_q)
    jacobian = geometry.jacobian_length()
    assert jacobian.shape == (1, 2)

    eps = 1e-7
    for i in range(2):
      dq = th.zeros(2, dtype=th.float64)
      dq[i] = eps
      geometry.update_kinematics(arm, characteristics, q=arm_q + dq)
      forward = geometry.musculotendon_length().item()
      geometry.update_kinematics(arm, characteristics, q=arm_q - dq)
      backward = geometry.musculotendon_length().item()
      assert jacobian[0, i].item() == pytest.approx((forward - backward) / (2 * eps), abs=1e-6)

  def test_velocity(self, arm, arm_q):
    geometry = Geometry(MusclePoint((0.1, 0.03, 0.), parent='upper_arm'),
                        MusclePoint((0.05, 0.02, 0.), parent='forearm'))
    qdot = th.tensor([0.5, -1.], dtype=th.float64)
    geometry.update_kinematics(arm, Characteristics(), q=arm_q, qdot=qdot)
    assert geometry.velocity().item() == pytest.approx((geometry.jacobian_length() @ qdot).item())

  def test_velocity_reset_without_qdot(self, arm, arm_q):
    geometry = Geometry(MusclePoint((0.1, 0.03, 0.), parent='upper_arm'),
                        MusclePoint((0.05, 0.02, 0.), parent='forearm'))
    geometry.update_kinematics(arm, Characteristics(), q=arm_q, qdot=th.tensor([0.5, -1.], dtype=th.float64))
    assert geometry.velocity().item() != 0.
    geometry.update_kinematics(arm, Characteristics(), q=arm_q + 0.2)
    assert geometry.velocity().item() == 0.

  def test_velocity_kept_when_path_reused(self, arm, arm_q):
    geometry = Geometry(MusclePoint((0.1, 0.03, 0.), parent='upper_arm'),
                        MusclePoint((0.05, 0.02, 0.), parent='forearm'))
    geometry.update_kinematics(arm, Characteristics(), q=arm_q, qdot=th.tensor([0.5, -1.], dtype=th.float64))
    velocity = geometry.velocity().item()
    geometry.update_kinematics(arm, Characteristics(), update_kin=0)
    assert geometry.velocity().item() == velocity

  def test_reuse_path(self, arm, arm_q):
    geometry = Geometry(MusclePoint((0.1, 0.03, 0.), parent='upper_arm'),
                        MusclePoint((0.05, 0.02, 0.), parent='forearm'))
    geometry.update_kinematics(arm, Characteristics(), q=arm_q)
    length = geometry.musculotendon_length().item()
    geometry.update_kinematics(arm, Characteristics(), q=arm_q * 0, update_kin=0)
    assert geometry.musculotendon_length().item() == length


class TestViaPoints:

  def test_length_through_via(self, chain):
    geometry = Geometry(MusclePoint((0., 0., 0.), parent='base'), MusclePoint((1., 1., 0.), parent='segment_1'))
    path = PathModifiers()
    path.add_path_object(ViaPoint((0., 1., 0.), 'via', 'base'))
    geometry.update_kinematics(chain, Characteristics(), path, q=th.zeros(1))
    assert geometry.musculotendon_length().item() == pytest.approx(2.)
    assert len(geometry.muscles_points_in_global()) == 3
    assert geometry.jacobian().shape == (9, 1)


class TestWrappedPath:

  @pytest.fixture
  def geometry(self):
    return Geometry(MusclePoint((0., SQRT2, 0.), parent='base'), MusclePoint((0., -SQRT2, 0.), parent='segment_1'))

  @pytest.fixture
  def path(self):
    path = PathModifiers()
    path.add_path_object(WrappingCylinder(diameter=2., positive_sign=True, name='cylinder', parent='base'))
    return path

  def test_length_around_cylinder(self, chain, geometry, path):
    geometry.update_kinematics(chain, Characteristics(), path, q=th.zeros(1))
    assert geometry.musculotendon_length().item() == pytest.approx(2. + math.pi / 2)
    assert len(geometry.muscles_points_in_global()) == 4

  def test_jacobian(self, chain, geometry, path):
    geometry.update_kinematics(chain, Characteristics(), path, q=th.zeros(1))
    assert geometry.jacobian_length()[0, 0].item() == pytest.approx(-1.)

  def test_mixed_path_objects(self, chain, geometry, path):
    path.add_path_object(ViaPoint((0., 1., 0.), 'via', 'base'))
    with pytest.raises(ConfigurationError):
      geometry.update_kinematics(chain, Characteristics(), path, q=th.zeros(1))

  def test_no_wrap_propagates_nan(self, chain, path):
    geometry = Geometry(MusclePoint((2., 2., 0.), parent='base'), MusclePoint((2., -2., 0.), parent='segment_1'))
    geometry.update_kinematics(chain, Characteristics(), path, q=th.zeros(1), qdot=th.ones(1))
    assert math.isnan(geometry.musculotendon_length().item())
    assert math.isnan(geometry.length().item())
    assert math.isnan(geometry.velocity().item())


class TestManualPoints:

  def test_from_points(self):
    geometry = Geometry()
    geometry.update_kinematics_from_points(
      [(0., 0., 0.), (1., 0., 0.)],
      [th.zeros((3, 2)), [[1., 0.], [0., 0.], [0., 0.]]],
      Characteristics(),
      qdot=[2., 3.],
    )
    assert geometry.musculotendon_length().item() == pytest.approx(1.)
    assert th.allclose(geometry.jacobian_length(), th.tensor([[1., 0.]], dtype=th.float64))
    assert geometry.velocity().item() == pytest.approx(2.)

  def test_mismatched_jacobians(self):
    with pytest.raises(DimensionMismatchError):
      Geometry().update_kinematics_from_points([(0., 0., 0.), (1., 0., 0.)], [th.zeros((3, 2))], Characteristics())

  def test_velocity_reset_without_qdot(self):
    geometry = Geometry()
    points = [(0., 0., 0.), (1., 0., 0.)]
    jacobians = [th.zeros((3, 2)), [[1., 0.], [0., 0.], [0., 0.]]]
    geometry.update_kinematics_from_points(points, jacobians, Characteristics(), qdot=[2., 3.])
    geometry.update_kinematics_from_points(points, jacobians, Characteristics())
    assert geometry.velocity().item() == 0.

  def test_wrong_qdot_size(self):
    geometry = Geometry()
    with pytest.raises(DimensionMismatchError):
      geometry.update_kinematics_from_points(
        [(0., 0., 0.), (1., 0., 0.)], [th.zeros((3, 2)), th.zeros((3, 2))], Characteristics(), qdot=[1.]
      )
