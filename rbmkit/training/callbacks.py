# Copyright 2025 rbmkit Contributors
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
"""
Training callbacks for early stopping, learning rate schedules and monitoring

This module provides the callback system used by TrainingLoop:
- Early stopping on the per-epoch pseudo-likelihood
- Learning rate scheduling between epochs
- Custom metric monitoring
"""

from typing import Any, Callable, Dict, List, Optional
import torch.nn as nn
import numpy as np
import logging
from abc import ABC

logger = logging.getLogger(__name__)


class Callback(ABC):
    """Base class for training callbacks."""

    # Set by TrainingLoop before training starts
    loop: Optional[Any] = None

    def on_train_begin(self, logs: Dict[str, Any], model: nn.Module) -> None:
        """Called at the beginning of training."""
        pass

    def on_train_end(self, logs: Dict[str, Any], model: nn.Module) -> None:
        """Called at the end of training."""
        pass

    def on_epoch_begin(self, epoch: int, logs: Dict[str, Any], model: nn.Module) -> None:
        """Called at the beginning of each epoch."""
        pass

    def on_epoch_end(self, epoch: int, logs: Dict[str, Any], model: nn.Module) -> None:
        """Called at the end of each epoch."""
        pass

    def on_batch_end(self, batch: int, logs: Dict[str, Any], model: nn.Module) -> None:
        """Called at the end of each batch."""
        pass


class EarlyStopping(Callback):
    """Stop training when the monitored metric stops improving."""

    def __init__(
        self,
        monitor: str = 'pseudo_likelihood',
        patience: int = 5,
        min_delta: float = 0.0,
        mode: str = 'max',
        restore_best_weights: bool = False,
        verbose: bool = True
    ):
        """
        Initialize early stopping callback.

        Args:
            monitor: Metric to monitor
            patience: Number of epochs with no improvement to wait
            min_delta: Minimum change to qualify as improvement
            mode: 'min' for minimization, 'max' for maximization
            restore_best_weights: Whether to restore best weights when stopping
            verbose: Whether to log messages
        """
        self.monitor = monitor
        self.patience = patience
        self.min_delta = min_delta
        self.mode = mode
        self.restore_best_weights = restore_best_weights
        self.verbose = verbose

        self.wait = 0
        self.stopped_epoch = 0
        self.best_weights = None

        if mode == 'min':
            self.monitor_op = np.less
            self.best = np.inf
        elif mode == 'max':
            self.monitor_op = np.greater
            self.best = -np.inf
        else:
            raise ValueError(f"Mode {mode} not supported")

    def on_train_begin(self, logs: Dict[str, Any], model: nn.Module) -> None:
        """Reset state at training start."""
        self.wait = 0
        self.stopped_epoch = 0
        self.best = np.inf if self.mode == 'min' else -np.inf
        self.best_weights = None

    def _improved(self, current: float) -> bool:
        if self.mode == 'min':
            return self.monitor_op(current + self.min_delta, self.best)
        return self.monitor_op(current - self.min_delta, self.best)

    def on_epoch_end(self, epoch: int, logs: Dict[str, Any], model: nn.Module) -> None:
        """Check for early stopping condition."""
        current = logs.get(self.monitor)
        if current is None:
            logger.warning(f"Early stopping metric '{self.monitor}' not found in logs")
            return

        if self._improved(current):
            self.best = current
            self.wait = 0
            if self.restore_best_weights:
                self.best_weights = {k: v.clone() for k, v in model.state_dict().items()}
        else:
            self.wait += 1
            if self.wait >= self.patience:
                self.stopped_epoch = epoch
                if self.verbose:
                    logger.info(f"Early stopping at epoch {epoch + 1}")

                if self.restore_best_weights and self.best_weights is not None:
                    model.load_state_dict(self.best_weights)
                    if self.verbose:
                        logger.info("Restored best weights")

    def should_stop(self) -> bool:
        """Check if training should stop."""
        return self.wait >= self.patience


class LearningRateScheduler(Callback):
    """Update the training loop's learning rate after every epoch."""

    def __init__(self, schedule: Callable[[int], float], verbose: bool = True):
        """
        Initialize learning rate scheduler.

        Args:
            schedule: Function mapping the finished epoch index to the next learning rate
            verbose: Whether to log learning rate changes
        """
        self.schedule = schedule
        self.verbose = verbose

    def on_epoch_end(self, epoch: int, logs: Dict[str, Any], model: nn.Module) -> None:
        """Update learning rate."""
        if self.loop is None:
            logger.warning("LearningRateScheduler is not attached to a training loop")
            return

        old_lr = self.loop.learning_rate
        new_lr = float(self.schedule(epoch))
        self.loop.learning_rate = new_lr

        if self.verbose and old_lr != new_lr:
            logger.info(f"Learning rate updated: {old_lr:.6f} -> {new_lr:.6f}")

        logs['learning_rate'] = new_lr


class MetricMonitor(Callback):
    """
    Record extra per-epoch metrics of the model alongside pseudo-likelihood.

    Each metric lands in the epoch logs as ``custom_<name>``. Epochs skipped
    by ``log_freq`` record NaN so every history list keeps one entry per epoch.
    """

    def __init__(
        self,
        metrics: Dict[str, Callable],
        log_freq: int = 1,
        verbose: bool = True
    ):
        """
        Initialize metric monitor.

        Args:
            metrics: Dictionary of metric name -> function(model, logs)
            log_freq: Evaluate metrics every ``log_freq`` epochs
            verbose: Whether to log metric values
        """
        if int(log_freq) < 1:
            raise ValueError(f"log_freq must be >= 1, got {log_freq}")
        self.metrics = metrics
        self.log_freq = int(log_freq)
        self.verbose = verbose
        self.metric_history: Dict[str, List[float]] = {name: [] for name in metrics}

    def on_train_begin(self, logs: Dict[str, Any], model: nn.Module) -> None:
        self.metric_history = {name: [] for name in self.metrics}

    def on_epoch_end(self, epoch: int, logs: Dict[str, Any], model: nn.Module) -> None:
        """Evaluate metrics on scheduled epochs, NaN otherwise."""
        evaluate = (epoch + 1) % self.log_freq == 0
        for name, metric_fn in self.metrics.items():
            value = float(metric_fn(model, logs)) if evaluate else float('nan')
            self.metric_history[name].append(value)
            logs[f'custom_{name}'] = value

            if evaluate and self.verbose:
                logger.info(f"Epoch {epoch + 1} - {name}: {value:.4f}")

    def get_metric_history(self) -> Dict[str, List[float]]:
        """Per-epoch metric values, NaN where not evaluated."""
        return {name: list(values) for name, values in self.metric_history.items()}


def get_standard_callbacks(
    patience: int = 5,
    monitor: str = 'pseudo_likelihood',
    min_delta: float = 0.0
) -> List[Callback]:
    """
    Get a standard set of callbacks for training.

    Args:
        patience: Patience for early stopping
        monitor: Metric to monitor
        min_delta: Minimum improvement for early stopping

    Returns:
        List of configured callbacks
    """
    return [
        EarlyStopping(monitor=monitor, patience=patience, min_delta=min_delta, mode='max'),
    ]
