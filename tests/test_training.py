#!/usr/bin/env python3
"""
Unit tests for rbmkit training.

This module contains tests for the CD/PCD estimators, per-batch updates,
input validation, the training loop and its callbacks.
"""

import math
import unittest
from unittest import mock
import torch
from pathlib import Path
import sys

# Add project root to path
sys.path.append(str(Path(__file__).parent.parent))

from rbmkit.exceptions import InvalidConfiguration, InvalidInputRange, ShapeMismatch
from rbmkit.models.rbm import BernoulliRBM, GRBM
from rbmkit.training.callbacks import (
    Callback,
    EarlyStopping,
    LearningRateScheduler,
    MetricMonitor,
    get_standard_callbacks,
)
from rbmkit.training.estimators import (
    contrastive_divergence,
    persistent_contrastive_divergence,
    get_estimator,
)
from rbmkit.training.loop import TrainingLoop, fit, fit_batch


def binary_data(n_rows: int, n_cols: int, seed: int = 0) -> torch.Tensor:
    """Random 0/1 matrix with one sample per column."""
    gen = torch.Generator().manual_seed(seed)
    return torch.bernoulli(torch.full((n_rows, n_cols), 0.5, dtype=torch.float64), generator=gen)


class TestEstimators(unittest.TestCase):
    """Test cases for CD-k and PCD-k."""

    def setUp(self):
        """Set up test fixtures."""
        self.rbm = BernoulliRBM(4, 3, init_scale=0.1, random_seed=0)
        self.batch = binary_data(4, 6)

    def test_get_estimator(self):
        """Test estimator selection."""
        self.assertIs(get_estimator(True), persistent_contrastive_divergence)
        self.assertIs(get_estimator(False), contrastive_divergence)

    def test_contrastive_divergence(self):
        """Test CD-k starts the chain from the batch and keeps no state."""
        with mock.patch.object(self.rbm, 'gibbs', wraps=self.rbm.gibbs) as spy:
            v_pos, h_pos, v_neg, h_neg = contrastive_divergence(self.rbm, self.batch, 2)

        spy.assert_called_once()
        self.assertTrue(torch.equal(spy.call_args[0][0], self.batch))
        self.assertEqual(spy.call_args[1]['steps'], 2)
        self.assertTrue(torch.equal(v_pos, self.batch))
        self.assertEqual(h_neg.shape, (3, 6))
        self.assertEqual(self.rbm.persistent_chain.numel(), 0)

    def test_cd1_gradient_sign(self):
        """Test the applied delta equals h_pos v_pos^T - h_neg v_neg^T exactly."""
        rbm = BernoulliRBM(3, 2, init_scale=0.0, random_seed=123)
        batch = torch.ones(3, 1, dtype=torch.float64)

        phases = fit_batch(rbm, batch, persistent=False, learning_rate=1.0, gibbs_steps=1)

        expected = phases.h_pos @ phases.v_pos.t() - phases.h_neg @ phases.v_neg.t()
        self.assertTrue(torch.equal(rbm.dW_prev, expected))
        # W started at zero with no previous delta, and lr / 1 column = 1
        self.assertTrue(torch.equal(rbm.W, expected))

        # Bit-reproducible under the same seed
        replay = BernoulliRBM(3, 2, init_scale=0.0, random_seed=123)
        fit_batch(replay, batch, persistent=False, learning_rate=1.0, gibbs_steps=1)
        self.assertTrue(torch.equal(replay.W, rbm.W))

    def test_pcd_initializes_chain_from_batch(self):
        """Test the first PCD call starts the chain at the batch."""
        with mock.patch.object(self.rbm, 'gibbs', wraps=self.rbm.gibbs) as spy:
            v_pos, h_pos, v_neg, h_neg = persistent_contrastive_divergence(self.rbm, self.batch, 1)

        self.assertTrue(torch.equal(spy.call_args[0][0], self.batch))
        self.assertTrue(torch.equal(v_pos, self.batch))
        self.assertEqual(h_pos.shape, (3, 6))
        self.assertTrue(torch.equal(self.rbm.persistent_chain, v_neg))

    def test_pcd_chain_persists(self):
        """Test the chain evolves from its previous state when shapes match."""
        persistent_contrastive_divergence(self.rbm, self.batch, 1)
        chain = self.rbm.persistent_chain.clone()

        other_batch = binary_data(4, 6, seed=1)
        with mock.patch.object(self.rbm, 'gibbs', wraps=self.rbm.gibbs) as spy:
            v_pos, _, v_neg, _ = persistent_contrastive_divergence(self.rbm, other_batch, 3)

        self.assertTrue(torch.equal(spy.call_args[0][0], chain))
        self.assertEqual(spy.call_args[1]['steps'], 3)
        # Positive phase still comes from the real data
        self.assertTrue(torch.equal(v_pos, other_batch))
        self.assertTrue(torch.equal(self.rbm.persistent_chain, v_neg))

    def test_pcd_resets_on_shape_change(self):
        """Test the chain restarts at the batch when the batch shape changes."""
        persistent_contrastive_divergence(self.rbm, self.batch, 1)

        short_batch = binary_data(4, 2, seed=2)
        with mock.patch.object(self.rbm, 'gibbs', wraps=self.rbm.gibbs) as spy:
            persistent_contrastive_divergence(self.rbm, short_batch, 1)

        self.assertTrue(torch.equal(spy.call_args[0][0], short_batch))
        self.assertEqual(self.rbm.persistent_chain.shape, (4, 2))


class TestFitBatch(unittest.TestCase):
    """Test cases for single-batch updates."""

    def test_learning_rate_is_per_sample(self):
        """Test the learning rate is divided by the batch's column count."""
        rbm = BernoulliRBM(4, 3, random_seed=0)
        batch = binary_data(4, 8)

        with mock.patch.object(rbm, 'update_weights', wraps=rbm.update_weights) as spy:
            fit_batch(rbm, batch, persistent=True, learning_rate=0.4)

        spy.assert_called_once()
        self.assertAlmostEqual(spy.call_args[0][4], 0.05)

    def test_weights_change(self):
        """Test a batch update changes the weights."""
        rbm = BernoulliRBM(4, 3, init_scale=0.01, random_seed=0)
        initial_weights = rbm.W.clone()

        fit_batch(rbm, binary_data(4, 8), persistent=False)

        self.assertFalse(torch.allclose(initial_weights, rbm.W))


class TestTrainingLoop(unittest.TestCase):
    """Test cases for TrainingLoop and fit."""

    def setUp(self):
        """Set up test fixtures."""
        self.rbm = BernoulliRBM(4, 3, init_scale=0.01, random_seed=0)
        self.data = binary_data(4, 10)

    def test_batches_are_contiguous(self):
        """Test batches partition the columns in order."""
        loop = TrainingLoop(self.rbm, self.data, batch_size=4)
        batches = list(loop.batches())

        self.assertEqual(loop.n_batches, 3)
        self.assertEqual([b.shape[1] for b in batches], [4, 4, 2])
        self.assertTrue(torch.equal(torch.cat(batches, dim=1), self.data))

    def test_sparse_batches(self):
        """Test sparse data is batched into dense column slices."""
        loop = TrainingLoop(self.rbm, self.data.to_sparse(), batch_size=4)
        batches = list(loop.batches())

        self.assertFalse(any(b.is_sparse for b in batches))
        self.assertTrue(torch.equal(torch.cat(batches, dim=1), self.data))

    def test_fit_history(self):
        """Test fit reports one pseudo-likelihood per epoch."""
        history = fit(self.rbm, self.data, epochs=3, batch_size=4)

        self.assertEqual(len(history['pseudo_likelihood']), 3)
        self.assertEqual(len(history['epoch_time']), 3)
        self.assertTrue(all(pl <= 0 for pl in history['pseudo_likelihood']))

    def test_fit_persistent_chain_tracks_last_batch(self):
        """Test PCD leaves the chain shaped like the final batch."""
        fit(self.rbm, self.data, persistent=True, epochs=2, batch_size=4)
        self.assertEqual(self.rbm.persistent_chain.shape, (4, 2))

    def test_fit_gaussian_visible_persistent(self):
        """Test PCD training of a Gaussian-visible model stays finite."""
        grbm = GRBM(4, 3, init_scale=0.01, random_seed=3)
        history = fit(grbm, self.data, persistent=True, epochs=3, batch_size=5)

        self.assertEqual(grbm.persistent_chain.shape, (4, 5))
        self.assertEqual(len(history['pseudo_likelihood']), 3)
        self.assertTrue(all(math.isfinite(pl) for pl in history['pseudo_likelihood']))
        self.assertTrue(torch.all(torch.isfinite(grbm.W)))

    def test_fit_cd_leaves_chain_empty(self):
        """Test CD never touches the persistent chain."""
        fit(self.rbm, self.data, persistent=False, epochs=1, batch_size=4)
        self.assertEqual(self.rbm.persistent_chain.numel(), 0)

    def test_fit_accepts_numpy_and_sparse(self):
        """Test numpy and sparse inputs train."""
        history = fit(self.rbm, self.data.numpy(), epochs=1, batch_size=5)
        self.assertEqual(len(history['pseudo_likelihood']), 1)

        history = fit(self.rbm, self.data.to_sparse(), epochs=1, batch_size=5)
        self.assertEqual(len(history['pseudo_likelihood']), 1)

    def test_zero_epochs(self):
        """Test zero epochs leaves the model untouched."""
        initial_weights = self.rbm.W.clone()
        history = fit(self.rbm, self.data, epochs=0)

        self.assertEqual(history['pseudo_likelihood'], [])
        self.assertTrue(torch.equal(initial_weights, self.rbm.W))

    def test_invalid_range_fails_before_mutation(self):
        """Test out-of-range data is rejected with the model unchanged."""
        initial_weights = self.rbm.W.clone()

        bad = self.data.clone()
        bad[0, 0] = 1.5
        with self.assertRaises(InvalidInputRange):
            fit(self.rbm, bad, epochs=1)

        bad = self.data.clone()
        bad[2, 3] = -0.1
        with self.assertRaises(InvalidInputRange):
            fit(self.rbm, bad, epochs=1)

        bad = self.data.clone()
        bad[1, 1] = float('nan')
        with self.assertRaises(InvalidInputRange):
            fit(self.rbm, bad, epochs=1)

        self.assertTrue(torch.equal(initial_weights, self.rbm.W))
        self.assertEqual(self.rbm.persistent_chain.numel(), 0)

    def test_empty_data_rejected(self):
        """Test data without samples is rejected with the model unchanged."""
        initial_weights = self.rbm.W.clone()

        with self.assertRaises(InvalidConfiguration):
            fit(self.rbm, torch.zeros(4, 0, dtype=torch.float64), epochs=1)
        with self.assertRaises(InvalidConfiguration):
            TrainingLoop(self.rbm, torch.zeros(4, 0, dtype=torch.float64))

        self.assertTrue(torch.equal(initial_weights, self.rbm.W))
        self.assertEqual(self.rbm.persistent_chain.numel(), 0)

    def test_shape_mismatch(self):
        """Test data with the wrong feature count is rejected."""
        with self.assertRaises(ShapeMismatch):
            fit(self.rbm, binary_data(5, 10), epochs=1)

    def test_invalid_configuration(self):
        """Test invalid training settings are rejected."""
        with self.assertRaises(InvalidConfiguration):
            fit(self.rbm, self.data, batch_size=0)
        with self.assertRaises(InvalidConfiguration):
            fit(self.rbm, self.data, gibbs_steps=0)
        with self.assertRaises(InvalidConfiguration):
            fit(self.rbm, self.data, epochs=-1)
        with self.assertRaises(InvalidConfiguration):
            fit(self.rbm, self.data, learning_rate=-0.1)

    def test_end_to_end_improvement(self):
        """Test pseudo-likelihood improves over training on average."""
        # Feature 0 always on, feature 3 always off, features 1 and 2 mostly so
        data = torch.tensor([
            [1, 1, 1, 1, 1, 1, 1, 1],
            [1, 1, 1, 1, 1, 1, 1, 0],
            [0, 0, 0, 0, 0, 0, 0, 1],
            [0, 0, 0, 0, 0, 0, 0, 0],
        ], dtype=torch.float64)

        first, last = [], []
        for seed in range(5):
            rbm = BernoulliRBM(4, 2, momentum=0.0, random_seed=seed)
            history = fit(rbm, data, persistent=False, learning_rate=1.0,
                          epochs=5, batch_size=8)
            first.append(history['pseudo_likelihood'][0])
            last.append(history['pseudo_likelihood'][-1])

        mean_first = sum(first) / len(first)
        mean_last = sum(last) / len(last)
        self.assertGreaterEqual(mean_last, mean_first - 0.05)

    def test_training_is_reproducible(self):
        """Test identically seeded runs give identical results."""
        histories, weights = [], []
        for _ in range(2):
            rbm = BernoulliRBM(4, 3, init_scale=0.01, random_seed=11)
            histories.append(fit(rbm, self.data, epochs=2, batch_size=4)['pseudo_likelihood'])
            weights.append(rbm.W.clone())

        self.assertEqual(histories[0], histories[1])
        self.assertTrue(torch.equal(weights[0], weights[1]))


class TestCallbacks(unittest.TestCase):
    """Test cases for training callbacks."""

    def setUp(self):
        """Set up test fixtures."""
        self.rbm = BernoulliRBM(4, 3, init_scale=0.01, random_seed=0)
        self.data = binary_data(4, 10)

    def test_early_stopping_logic(self):
        """Test early stopping waits for the configured patience."""
        callback = EarlyStopping(patience=2, verbose=False)
        callback.on_train_begin(logs={}, model=self.rbm)

        for epoch, value in enumerate([-3.0, -2.0, -2.5, -2.1]):
            callback.on_epoch_end(epoch, {'pseudo_likelihood': value}, self.rbm)

        self.assertTrue(callback.should_stop())
        self.assertEqual(callback.best, -2.0)
        self.assertEqual(callback.stopped_epoch, 3)

    def test_early_stopping_restores_best_weights(self):
        """Test the best weights are restored when stopping."""
        callback = EarlyStopping(patience=1, restore_best_weights=True, verbose=False)
        callback.on_train_begin(logs={}, model=self.rbm)

        callback.on_epoch_end(0, {'pseudo_likelihood': -1.0}, self.rbm)
        best = self.rbm.W.clone()
        with torch.no_grad():
            self.rbm.W.add_(1.0)
        callback.on_epoch_end(1, {'pseudo_likelihood': -2.0}, self.rbm)

        self.assertTrue(torch.equal(self.rbm.W, best))

    def test_early_stopping_invalid_mode(self):
        """Test unknown modes are rejected."""
        with self.assertRaises(ValueError):
            EarlyStopping(mode='sideways')

    def test_loop_stops_when_callback_requests(self):
        """Test a stopping callback ends training after the current epoch."""
        class StopImmediately(Callback):
            def should_stop(self):
                return True

        history = fit(self.rbm, self.data, epochs=5, batch_size=5, callbacks=[StopImmediately()])
        self.assertEqual(len(history['pseudo_likelihood']), 1)

    def test_learning_rate_scheduler(self):
        """Test the schedule updates the loop's learning rate."""
        scheduler = LearningRateScheduler(lambda epoch: 0.1 / (epoch + 2), verbose=False)
        loop = TrainingLoop(self.rbm, self.data, batch_size=5, callbacks=[scheduler])
        history = loop.train(epochs=2)

        self.assertIs(scheduler.loop, loop)
        self.assertAlmostEqual(loop.learning_rate, 0.1 / 3)
        self.assertEqual(len(history['learning_rate']), 2)

    def test_metric_monitor(self):
        """Test custom metrics are computed every epoch."""
        monitor = MetricMonitor(
            {'weight_norm': lambda model, logs: torch.norm(model.W).item()},
            verbose=False
        )
        history = fit(self.rbm, self.data, epochs=2, batch_size=5, callbacks=[monitor])

        self.assertEqual(len(monitor.get_metric_history()['weight_norm']), 2)
        self.assertEqual(len(history['custom_weight_norm']), 2)

    def test_metric_monitor_keeps_one_entry_per_epoch(self):
        """Test skipped epochs record NaN so history lists stay aligned."""
        monitor = MetricMonitor(
            {'weight_norm': lambda model, logs: torch.norm(model.W).item()},
            log_freq=2,
            verbose=False
        )
        history = fit(self.rbm, self.data, epochs=4, batch_size=5, callbacks=[monitor])

        custom = history['custom_weight_norm']
        self.assertEqual(len(custom), len(history['pseudo_likelihood']))
        self.assertTrue(math.isnan(custom[0]) and math.isnan(custom[2]))
        self.assertTrue(math.isfinite(custom[1]) and math.isfinite(custom[3]))
        self.assertEqual(len(monitor.get_metric_history()['weight_norm']), 4)

        with self.assertRaises(ValueError):
            MetricMonitor({}, log_freq=0)

    def test_callback_hooks_called(self):
        """Test the loop drives every callback hook."""
        callback = mock.MagicMock(spec=Callback)
        fit(self.rbm, self.data, epochs=2, batch_size=5, callbacks=[callback])

        callback.on_train_begin.assert_called_once()
        self.assertEqual(callback.on_epoch_begin.call_count, 2)
        self.assertEqual(callback.on_epoch_end.call_count, 2)
        callback.on_train_end.assert_called_once()
        self.assertGreater(callback.on_batch_end.call_count, 0)

    def test_standard_callbacks(self):
        """Test the standard callback set."""
        callbacks = get_standard_callbacks(patience=3)
        self.assertEqual(len(callbacks), 1)
        self.assertIsInstance(callbacks[0], EarlyStopping)
        self.assertEqual(callbacks[0].patience, 3)
        self.assertEqual(callbacks[0].mode, 'max')


if __name__ == '__main__':
    unittest.main()
