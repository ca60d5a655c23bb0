import math
import numpy as np
import pytest

from myotorque.batch import muscle_forces_from_activation, muscle_joint_torque_from_activation, muscles_length_from_q
from myotorque.errors import DimensionMismatchError


# the actuator pulls from (0, 0.5) on the base towards (1, 0) on the segment
MOMENT_ARM = 0.5 / math.sqrt(1.25)


class TestTorqueFromActivation:

  def test_shapes_exclude_root(self, rooted_muscles):
    activations = np.full((3, 1), 0.5)
    q = np.zeros((3, 3))
    torque, forces = muscle_joint_torque_from_activation(rooted_muscles, activations, q, q, return_forces=True)
    assert torque.shape == (1, 3)
    assert forces.shape == (1, 3)

  def test_values(self, rooted_muscles):
    activations = np.array([[0.5], [1.], [0.]])
    q = np.zeros((3, 3))
    torque, forces = muscle_joint_torque_from_activation(rooted_muscles, activations, q, q, return_forces=True)
    np.testing.assert_allclose(forces, [[50., 100., 0.]])
    np.testing.assert_allclose(torque, [[MOMENT_ARM * 50., MOMENT_ARM * 100., 0.]], atol=1e-12)

  def test_single_frame_without_kinematics(self, rooted_muscles):
    rooted_muscles.update_muscles(np.zeros(3))
    torque = muscle_joint_torque_from_activation(rooted_muscles, [[0.5]])
    np.testing.assert_allclose(torque, [[MOMENT_ARM * 50.]])

  def test_forces_only(self, rooted_muscles):
    q = np.zeros((2, 3))
    forces = muscle_forces_from_activation(rooted_muscles, [[0.2], [0.4]], q, q)
    np.testing.assert_allclose(forces, [[20., 40.]])

  def test_several_frames_need_kinematics(self, rooted_muscles):
    with pytest.raises(DimensionMismatchError):
      muscle_joint_torque_from_activation(rooted_muscles, [[0.5], [0.5]])

  def test_q_without_qdot(self, rooted_muscles):
    with pytest.raises(DimensionMismatchError):
      muscle_joint_torque_from_activation(rooted_muscles, [[0.5]], q=np.zeros((1, 3)))

  def test_frame_mismatch(self, rooted_muscles):
    with pytest.raises(DimensionMismatchError):
      muscle_joint_torque_from_activation(rooted_muscles, [[0.5], [0.5]], np.zeros((3, 3)), np.zeros((3, 3)))

  def test_wrong_number_of_muscles(self, rooted_muscles):
    with pytest.raises(DimensionMismatchError):
      muscle_joint_torque_from_activation(rooted_muscles, [[0.5, 0.5]], np.zeros((1, 3)), np.zeros((1, 3)))

  def test_wrong_number_of_coordinates(self, rooted_muscles):
    with pytest.raises(DimensionMismatchError):
      muscle_joint_torque_from_activation(rooted_muscles, [[0.5]], np.zeros((1, 2)), np.zeros((1, 2)))

  def test_non_wrapping_frame_does_not_abort(self, wrapped_muscles):
    q = np.array([[0.], [math.pi], [0.]])
    torque, forces = muscle_joint_torque_from_activation(
      wrapped_muscles, np.full((3, 1), 0.5), q, np.zeros((3, 1)), return_forces=True
    )
    assert np.isnan(torque[0, 1])
    # the length jacobian of the wrapped path is -1 at q = 0
    np.testing.assert_allclose(torque[0, [0, 2]], [50., 50.])
    np.testing.assert_allclose(forces, [[50., 50., 50.]])


class TestLengthFromQ:

  def test_non_wrapping_frame_lengths(self, wrapped_muscles):
    lengths = muscles_length_from_q(wrapped_muscles, [[0.], [math.pi], [0.]])
    assert np.isnan(lengths[0, 1])
    np.testing.assert_allclose(lengths[0, [0, 2]], 2. + math.pi / 2)

  def test_lengths(self, rooted_muscles):
    q = np.array([[0., 0., 0.], [1., 2., 0.], [0., 0., math.pi / 2]])
    lengths = muscles_length_from_q(rooted_muscles, q)
    assert lengths.shape == (1, 3)
    np.testing.assert_allclose(lengths[0, :2], math.sqrt(1.25))
    # insertion at (0, 1) once the segment is rotated by a quarter turn
    assert lengths[0, 2] == pytest.approx(0.5)
