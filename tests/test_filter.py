"""
SPKF-Lite - Sigma-Point Kalman Filter Test Suite
================================================
pytest tests for the predict/observe/correct cycle.

Run: pytest tests/ -v
"""

import numpy as np
import pytest

from conftest import make_spd
from spkf import (
    CubatureWeights,
    DimensionMismatch,
    FilterConfig,
    FilterPhase,
    JulierWeights,
    LinearObservationModel,
    LinearProcessModel,
    NonPositiveDefiniteCovariance,
    NumericalDivergence,
    RangeBearingModel,
    ScaledUnscentedWeights,
    SigmaParams,
    SigmaPointKalmanFilter,
    SquareRootCovarianceUpdate,
    create_radar_filter,
)


def identity_f(x, u, w, dt):
    return x + w


def identity_h(x, v):
    return x + v


def kf_predict(x, P, F, Q, B=None, u=None):
    x = F @ x if B is None else F @ x + B @ u
    return x, F @ P @ F.T + Q


def kf_update(x, P, z, H, R):
    S = H @ P @ H.T + R
    K = P @ H.T @ np.linalg.inv(S)
    return x + K @ (z - H @ x), P - K @ S @ K.T, S


class TestLinearExactness:
    """Augmented UKF must match the closed-form Kalman filter for linear models"""

    @pytest.mark.parametrize("nx", [1, 2, 3, 4, 5, 6])
    def test_matches_kalman_filter(self, nx):
        rng = np.random.default_rng(100 + nx)
        nz = max(1, nx // 2)
        F = np.eye(nx) + 0.1 * rng.normal(size=(nx, nx))
        H = rng.normal(size=(nz, nx))
        P0, Q, R = make_spd(rng, nx), 0.1 * make_spd(rng, nx), make_spd(rng, nz)
        x0 = rng.normal(size=nx)

        kf = SigmaPointKalmanFilter(x0, P0, Q, R, LinearProcessModel(F), LinearObservationModel(H))
        x, P = x0.copy(), P0.copy()

        for _ in range(5):
            x, P = kf_predict(x, P, F, Q)
            kf.predict(dt=1.0)
            np.testing.assert_allclose(kf.state, x, rtol=1e-8, atol=1e-9)
            np.testing.assert_allclose(kf.covar, P, rtol=1e-8, atol=1e-9)

            z = H @ x + rng.normal(size=nz)
            z_pred = kf.observe()
            np.testing.assert_allclose(z_pred, H @ x, rtol=1e-8, atol=1e-9)

            kf.correct(z)
            x, P, S = kf_update(x, P, z, H, R)
            np.testing.assert_allclose(kf.innovation_covar, S, rtol=1e-8, atol=1e-9)
            np.testing.assert_allclose(kf.state, x, rtol=1e-8, atol=1e-9)
            np.testing.assert_allclose(kf.covar, P, rtol=1e-8, atol=1e-9)

    @pytest.mark.parametrize("make_weights", [
        lambda L: CubatureWeights(L),
        lambda L: JulierWeights(L, kappa=0.5),
        lambda L: ScaledUnscentedWeights(L, SigmaParams(alpha=0.5, beta=2.0, kappa=1.0)),
    ])
    def test_weighting_policy_does_not_change_linear_result(self, make_weights):
        rng = np.random.default_rng(7)
        nx, nz = 3, 2
        F = np.eye(nx) + 0.1 * rng.normal(size=(nx, nx))
        H = rng.normal(size=(nz, nx))
        P0, Q, R = make_spd(rng, nx), 0.1 * make_spd(rng, nx), make_spd(rng, nz)
        x0 = rng.normal(size=nx)
        z = rng.normal(size=nz)

        kf = SigmaPointKalmanFilter(
            x0, P0, Q, R, LinearProcessModel(F), LinearObservationModel(H),
            weights=make_weights(2 * nx + nz),
        )
        kf.predict()
        kf.update(z)

        x, P = kf_predict(x0, P0, F, Q)
        x, P, _ = kf_update(x, P, z, H, R)
        np.testing.assert_allclose(kf.state, x, rtol=1e-8, atol=1e-9)
        np.testing.assert_allclose(kf.covar, P, rtol=1e-8, atol=1e-9)

    def test_control_input(self):
        rng = np.random.default_rng(3)
        F = np.array([[1.0, 0.1], [0.0, 1.0]])
        B = np.array([[0.005], [0.1]])
        P0, Q = make_spd(rng, 2), 0.01 * np.eye(2)
        x0 = np.array([0.0, 1.0])
        u = np.array([2.0])

        kf = SigmaPointKalmanFilter(
            x0, P0, Q, np.eye(1),
            LinearProcessModel(F, B), LinearObservationModel(np.array([[1.0, 0.0]])),
            n_control=1,
        )
        kf.predict(u, dt=0.1)

        x, P = kf_predict(x0, P0, F, Q, B, u)
        np.testing.assert_allclose(kf.state, x, atol=1e-10)
        np.testing.assert_allclose(kf.covar, P, atol=1e-10)

    def test_square_root_update_matches_classic(self):
        rng = np.random.default_rng(11)
        nx, nz = 4, 2
        F = np.eye(nx) + 0.1 * rng.normal(size=(nx, nx))
        H = rng.normal(size=(nz, nx))
        P0, Q, R = make_spd(rng, nx), 0.1 * make_spd(rng, nx), make_spd(rng, nz)
        x0 = rng.normal(size=nx)

        classic = SigmaPointKalmanFilter(x0, P0, Q, R, LinearProcessModel(F), LinearObservationModel(H))
        sqrt_form = SigmaPointKalmanFilter(
            x0, P0, Q, R, LinearProcessModel(F), LinearObservationModel(H),
            covariance_update=SquareRootCovarianceUpdate(),
        )

        for _ in range(5):
            z = rng.normal(size=nz)
            classic.step(z)
            sqrt_form.step(z)

        np.testing.assert_allclose(sqrt_form.state, classic.state, atol=1e-9)
        np.testing.assert_allclose(sqrt_form.covar, classic.covar, atol=1e-9)


class TestDegenerateScenario:
    """nx = nz = 1, identity models, noiseless"""

    def test_predict_and_observe(self):
        kf = SigmaPointKalmanFilter(
            np.zeros(1), np.eye(1), np.zeros((1, 1)), np.zeros((1, 1)), identity_f, identity_h
        )
        kf.predict(dt=1.0)
        assert kf.state[0] == pytest.approx(0.0)
        assert kf.covar[0, 0] == pytest.approx(1.0)

        z_pred = kf.observe()
        assert z_pred[0] == pytest.approx(0.0)
        # Innovation covariance is P + R; the sensor adds nothing
        assert kf.innovation_covar[0, 0] == pytest.approx(1.0)

        innovation = kf.correct(np.zeros(1))
        assert innovation[0] == pytest.approx(0.0)
        assert kf.kalman_gain[0, 0] == pytest.approx(1.0)
        assert kf.covar[0, 0] == pytest.approx(0.0, abs=1e-12)

    @pytest.mark.parametrize("update", [None, SquareRootCovarianceUpdate()])
    def test_zero_innovation_covariance_gain_is_defined(self, update):
        kf = SigmaPointKalmanFilter(
            np.zeros(1), np.zeros((1, 1)), np.zeros((1, 1)), np.zeros((1, 1)),
            identity_f, identity_h, covariance_update=update,
        )
        kf.predict(dt=1.0)
        assert kf.state[0] == 0.0

        z_pred = kf.observe()
        assert z_pred[0] == 0.0
        assert kf.innovation_covar[0, 0] == 0.0

        kf.correct(np.zeros(1))
        K = kf.kalman_gain
        assert np.all(np.isfinite(K))
        assert K[0, 0] == 0.0
        assert kf.state[0] == 0.0
        assert kf.covar[0, 0] == 0.0


class TestFilterInterface:
    """Construction, dimension checks and cycle state machine"""

    def _make(self, **kwargs):
        F = np.array([[1.0, 0.1], [0.0, 1.0]])
        args = dict(
            initial_state=np.array([0.0, 1.0]),
            initial_covariance=np.eye(2),
            process_noise_covariance=0.1 * np.eye(2),
            observation_noise_covariance=np.array([[1.0]]),
            process_model=lambda x, u, w, dt: F @ x + w,
            observation_model=lambda x, v: x[:1] + v,
        )
        args.update(kwargs)
        return SigmaPointKalmanFilter(**args)

    def test_sigma_count(self):
        kf = self._make(
            initial_state=np.zeros(3),
            initial_covariance=np.eye(3),
            process_noise_covariance=np.eye(3),
            observation_noise_covariance=np.eye(2),
            process_model=identity_f,
            observation_model=lambda x, v: x[:2] + v,
        )
        assert kf.n_sigma == 17
        assert kf.dims.L == 8
        assert kf.sigma_points.shape == (8, 17)

    def test_linear_system(self):
        """Same scenario as the classic UKF check: x += v*dt"""
        kf = self._make()
        kf.predict(dt=0.1)
        assert kf.state[0] == pytest.approx(0.1, rel=1e-9)

        innovation = kf.update(np.array([0.15]))
        assert abs(innovation[0]) < 0.5

    @pytest.mark.parametrize("field, value", [
        ("initial_covariance", np.eye(3)),
        ("process_noise_covariance", np.eye(1)),
        ("observation_noise_covariance", np.ones((1, 2))),
        ("proc_noise_mean", np.zeros(3)),
        ("obs_noise_mean", np.zeros(2)),
        ("initial_state", np.zeros(0)),
    ])
    def test_construction_dimension_mismatch(self, field, value):
        with pytest.raises(DimensionMismatch):
            self._make(**{field: value})

    def test_weights_for_wrong_dimension(self):
        with pytest.raises(DimensionMismatch):
            self._make(weights=CubatureWeights(3))

    def test_non_positive_definite_prior(self):
        with pytest.raises(NonPositiveDefiniteCovariance):
            self._make(initial_covariance=np.array([[1.0, 2.0], [2.0, 1.0]]))

    def test_non_positive_definite_noise(self):
        with pytest.raises(NonPositiveDefiniteCovariance):
            self._make(observation_noise_covariance=np.array([[-1.0]]))

    def test_control_dimension_checked(self):
        kf = self._make(n_control=1)
        with pytest.raises(DimensionMismatch):
            kf.predict(np.zeros(2))

    def test_observation_dimension_checked(self):
        kf = self._make()
        kf.observe()
        with pytest.raises(DimensionMismatch):
            kf.correct(np.zeros(2))

    def test_phase_transitions(self):
        kf = self._make()
        assert kf.phase is FilterPhase.IDLE

        kf.predict()
        assert kf.phase is FilterPhase.PREDICTED
        assert kf.innovation_covar is None

        kf.observe()
        assert kf.phase is FilterPhase.OBSERVED

        kf.correct(np.array([0.3]))
        assert kf.phase is FilterPhase.UPDATED
        assert kf.innovation is not None

        kf.predict()
        assert kf.phase is FilterPhase.PREDICTED

    def test_correct_requires_observe(self):
        kf = self._make()
        with pytest.raises(RuntimeError):
            kf.correct(np.array([0.0]))

        kf.predict()
        with pytest.raises(RuntimeError):
            kf.correct(np.array([0.0]))

        kf.observe()
        kf.correct(np.array([0.0]))
        with pytest.raises(RuntimeError):
            kf.correct(np.array([0.0]))

    def test_observe_from_prior(self):
        kf = self._make()
        z_pred = kf.observe()
        assert z_pred[0] == pytest.approx(0.0, abs=1e-12)
        np.testing.assert_allclose(kf.cross_covar, [[1.0], [0.0]], atol=1e-12)

    def test_observe_uses_regenerated_sigmas(self):
        kf = self._make()
        kf.predict(dt=0.1)
        kf.observe()
        state_rows = kf.sigma_points[:2]
        np.testing.assert_allclose(state_rows[:, 0], kf.state)

    def test_divergence_leaves_state_unchanged(self):
        blow_up = {"on": False}

        def f(x, u, w, dt):
            return x * np.nan if blow_up["on"] else x + w

        kf = self._make(process_model=f)
        kf.predict()
        x_before, P_before = kf.state, kf.covar

        blow_up["on"] = True
        with pytest.raises(NumericalDivergence):
            kf.predict()

        np.testing.assert_array_equal(kf.state, x_before)
        np.testing.assert_array_equal(kf.covar, P_before)

    def test_model_output_checked_with_input_checks_off(self):
        def f(x, u, w, dt):
            return np.full_like(x, np.inf)

        kf = self._make(process_model=f, config=FilterConfig(check_finite=False))
        with pytest.raises(NumericalDivergence):
            kf.predict()
        np.testing.assert_array_equal(kf.state, [0.0, 1.0])

    def test_non_finite_observation_rejected(self):
        kf = self._make()
        kf.observe()
        with pytest.raises(NumericalDivergence):
            kf.correct(np.array([np.nan]))

    def test_accessors_return_copies(self):
        kf = self._make()
        x = kf.state
        x[0] = 99.0
        assert kf.state[0] != 99.0

    def test_reset(self):
        kf = self._make()
        kf.step(np.array([0.5]), dt=0.1)
        kf.reset(np.array([5.0, 0.0]), 2.0 * np.eye(2))

        assert kf.phase is FilterPhase.IDLE
        np.testing.assert_array_equal(kf.state, [5.0, 0.0])
        np.testing.assert_array_equal(kf.covar, 2.0 * np.eye(2))

    def test_reset_rejects_bad_covariance(self):
        kf = self._make()
        with pytest.raises(NonPositiveDefiniteCovariance):
            kf.reset(np.zeros(2), -np.eye(2))

    def test_reset_rejects_non_finite_state(self):
        kf = self._make()
        with pytest.raises(NumericalDivergence):
            kf.reset(np.array([np.nan, 0.0]), np.eye(2))
        np.testing.assert_array_equal(kf.state, [0.0, 1.0])

    def test_float32_config(self):
        kf = self._make(config=FilterConfig(dtype=np.float32))
        kf.predict(dt=0.1)
        assert kf.state.dtype == np.float32

    def test_invalid_config(self):
        with pytest.raises(ValueError):
            FilterConfig(innovation_regularization=0.0)
        with pytest.raises(ValueError):
            FilterConfig(dtype=np.int32)


class TestRadarTracking:
    """Nonlinear range/bearing tracking"""

    def _simulate(self, kf, steps=20, seed=42):
        rng = np.random.default_rng(seed)
        true_pos = np.array([1000.0, 1000.0])
        true_vel = np.array([10.0, 5.0])
        errors = [np.linalg.norm(kf.state[:2] - true_pos)]

        for _ in range(steps):
            true_pos = true_pos + true_vel * 0.1
            r = np.sqrt(true_pos[0]**2 + true_pos[1]**2)
            theta = np.arctan2(true_pos[1], true_pos[0])
            z = np.array([r + rng.normal() * 10, theta + rng.normal() * 0.01])

            kf.predict(dt=0.1)
            kf.update(z)
            errors.append(np.linalg.norm(kf.state[:2] - true_pos))

            assert np.all(np.isfinite(kf.state))
            assert np.all(np.linalg.eigvalsh(kf.covar) > 0)

        return errors

    def test_nonlinear_tracking(self):
        kf = create_radar_filter(
            x0=np.array([1030.0, 970.0, 10.0, 5.0]),
            P0=np.diag([900.0, 900.0, 10.0, 10.0]),
        )
        errors = self._simulate(kf)

        # Error should decrease from the initial offset
        assert errors[-1] < errors[0]

    def test_square_root_tracking_agrees(self):
        x0 = np.array([1030.0, 970.0, 10.0, 5.0])
        P0 = np.diag([900.0, 900.0, 10.0, 10.0])
        classic = create_radar_filter(x0=x0, P0=P0)
        sqrt_form = create_radar_filter(x0=x0, P0=P0, covariance_update=SquareRootCovarianceUpdate())

        self._simulate(classic)
        self._simulate(sqrt_form)

        np.testing.assert_allclose(sqrt_form.state, classic.state, rtol=1e-6, atol=1e-6)

    def test_bearing_residual_wraps(self):
        model = RangeBearingModel()
        y = model.residual(np.array([1.0, np.pi - 0.01]), np.array([1.0, -np.pi + 0.01]))
        assert y[1] == pytest.approx(-0.02)

    def test_sensor_offset(self):
        model = RangeBearingModel(sensor_pos=np.array([1.0, 1.0]))
        z = model(np.array([4.0, 5.0, 0.0, 0.0]), np.zeros(2))
        np.testing.assert_allclose(z, [5.0, np.arctan2(4.0, 3.0)])

    def test_target_across_bearing_cut(self):
        # On the negative x axis the bearing sigma points straddle +/-pi
        kf = create_radar_filter(
            x0=np.array([-1000.0, 0.0, 0.0, 0.0]),
            P0=np.diag([100.0, 100.0, 1.0, 1.0]),
        )
        model = RangeBearingModel()

        z_pred = kf.observe()
        bearing_error = model.residual(np.array([0.0, np.pi]), z_pred)[1]
        assert abs(bearing_error) < 1e-6
        # sigma_y^2 / r^2 + sigma_bearing^2
        assert kf.innovation_covar[1, 1] == pytest.approx(2e-4, rel=0.02)
        assert kf.cross_covar[1, 1] == pytest.approx(-0.1, rel=0.02)

        innovation = kf.correct(np.array([1000.0, np.pi]))
        assert abs(innovation[1]) < 1e-6
        assert abs(kf.state[1]) < 0.01
