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
Training loop for Restricted Boltzmann Machines

This module provides the training infrastructure:
- fit_batch: one gradient estimate and weight update
- TrainingLoop: epochs over contiguous mini-batches with callbacks
- fit: functional entry point returning the training history

Input validation happens before any parameter is touched, so a rejected
call leaves the model unchanged.
"""

from typing import Any, Dict, Iterator, List, Optional
import torch
import logging
import time
from tqdm import tqdm

from ..exceptions import InvalidConfiguration, InvalidInputRange, ShapeMismatch
from ..models.rbm import GibbsSample, RestrictedBoltzmannMachine
from ..models.utils import as_matrix, in_unit_interval, to_dense
from .callbacks import Callback
from .estimators import get_estimator

logger = logging.getLogger(__name__)


def fit_batch(
    model: RestrictedBoltzmannMachine,
    batch: torch.Tensor,
    persistent: bool = True,
    learning_rate: float = 0.1,
    gibbs_steps: int = 1,
) -> GibbsSample:
    """
    Train on a single batch.

    Args:
        model: RBM to update in place
        batch: Training batch [n_visible, batch_size]
        persistent: Whether to use PCD instead of CD
        learning_rate: Learning rate before per-sample normalization
        gibbs_steps: Number of Gibbs transitions in the negative phase

    Returns:
        The GibbsSample used for the update
    """
    estimator = get_estimator(persistent)
    phases = estimator(model, batch, gibbs_steps)

    lr = learning_rate / phases.v_pos.shape[1]
    model.update_weights(phases.h_pos, phases.v_pos, phases.h_neg, phases.v_neg, lr)

    return phases


class TrainingLoop:
    """
    Epoch / mini-batch training loop for an RBM.

    Batches are contiguous column slices of the data in a fixed order. After
    every epoch the mean pseudo-likelihood of the full dataset is recorded
    as the training signal.
    """

    def __init__(
        self,
        model: RestrictedBoltzmannMachine,
        data: Any,
        persistent: bool = True,
        learning_rate: float = 0.1,
        batch_size: int = 100,
        gibbs_steps: int = 1,
        callbacks: Optional[List[Callback]] = None,
        sample_size: int = 10000,
        log_interval: int = 10,
    ):
        """
        Initialize training loop.

        Args:
            model: RBM to train
            data: Training data [n_visible, n_samples], every value in [0, 1]
            persistent: Whether to use PCD instead of CD
            learning_rate: Learning rate, divided by each batch's sample count
            batch_size: Number of samples per batch
            gibbs_steps: Number of Gibbs transitions per gradient estimate
            callbacks: List of training callbacks
            sample_size: Column budget for pseudo-likelihood scoring
            log_interval: Interval (batches) for progress bar updates
        """
        if int(batch_size) < 1:
            raise InvalidConfiguration(f"batch_size must be >= 1, got {batch_size}")
        if int(gibbs_steps) < 1:
            raise InvalidConfiguration(f"gibbs_steps must be >= 1, got {gibbs_steps}")
        if learning_rate < 0:
            raise InvalidConfiguration(f"learning_rate must be non-negative, got {learning_rate}")
        if int(sample_size) < 1:
            raise InvalidConfiguration(f"sample_size must be >= 1, got {sample_size}")

        data = as_matrix(data, dtype=model.dtype, device=model.device)
        if data.shape[1] == 0:
            raise InvalidConfiguration("Training data has no samples")
        if data.shape[0] != model.n_visible:
            raise ShapeMismatch(
                f"Data has {data.shape[0]} rows, model expects {model.n_visible}"
            )
        if not in_unit_interval(data):
            raise InvalidInputRange("All training values must lie in [0, 1]")

        self.model = model
        self.data = data.coalesce() if data.is_sparse else data
        self.persistent = persistent
        self.learning_rate = float(learning_rate)
        self.batch_size = int(batch_size)
        self.gibbs_steps = int(gibbs_steps)
        self.callbacks = callbacks or []
        self.sample_size = int(sample_size)
        self.log_interval = log_interval

        self.current_epoch = 0
        self.global_step = 0
        self.training_history: Dict[str, List[float]] = {
            'pseudo_likelihood': [],
            'epoch_time': []
        }

        for callback in self.callbacks:
            callback.loop = self

        logger.info(
            f"Training loop initialized for {model!r} on {self.n_samples} samples "
            f"({'PCD' if persistent else 'CD'}-{self.gibbs_steps})"
        )

    @property
    def n_samples(self) -> int:
        return self.data.shape[1]

    @property
    def n_batches(self) -> int:
        return -(-self.n_samples // self.batch_size)

    def batches(self) -> Iterator[torch.Tensor]:
        """Yield dense contiguous column batches; the last may be smaller."""
        for start in range(0, self.n_samples, self.batch_size):
            stop = min(start + self.batch_size, self.n_samples)
            if self.data.is_sparse:
                cols = torch.arange(start, stop, device=self.data.device)
                yield to_dense(self.data.index_select(1, cols))
            else:
                yield self.data[:, start:stop]

    def train_epoch(self, epoch: int) -> Dict[str, float]:
        """
        Train for one epoch and score the model.

        Args:
            epoch: Current epoch number

        Returns:
            metrics: Dictionary with the epoch's pseudo-likelihood and time
        """
        epoch_start_time = time.time()

        pbar = tqdm(
            self.batches(),
            total=self.n_batches,
            desc=f"Epoch {epoch + 1}",
            disable=not logger.isEnabledFor(logging.INFO)
        )

        for batch_idx, batch in enumerate(pbar):
            fit_batch(
                self.model,
                batch,
                persistent=self.persistent,
                learning_rate=self.learning_rate,
                gibbs_steps=self.gibbs_steps,
            )
            self.global_step += 1

            if batch_idx % self.log_interval == 0:
                for callback in self.callbacks:
                    callback.on_batch_end(
                        batch=batch_idx,
                        logs={'batch_size': batch.shape[1]},
                        model=self.model
                    )

        return {
            'pseudo_likelihood': self.score(),
            'epoch_time': time.time() - epoch_start_time,
        }

    def score(self) -> float:
        """Mean pseudo-likelihood of the training data."""
        with torch.no_grad():
            scores = self.model.pseudo_likelihood(self.data, sample_size=self.sample_size)
        return scores.mean().item()

    def train(self, epochs: int) -> Dict[str, List[float]]:
        """
        Main training loop.

        Args:
            epochs: Number of epochs to train

        Returns:
            history: Training history
        """
        logger.info(f"Starting training for {epochs} epochs")

        for callback in self.callbacks:
            callback.on_train_begin(logs={}, model=self.model)

        try:
            for epoch in range(int(epochs)):
                self.current_epoch = epoch

                for callback in self.callbacks:
                    callback.on_epoch_begin(epoch=epoch, logs={}, model=self.model)

                epoch_logs = self.train_epoch(epoch)

                logger.info(
                    f"Epoch {epoch + 1}/{epochs}"
                    f" - pseudo_likelihood: {epoch_logs['pseudo_likelihood']:.4f}"
                    f" - time: {epoch_logs['epoch_time']:.2f}s"
                )

                for callback in self.callbacks:
                    callback.on_epoch_end(epoch=epoch, logs=epoch_logs, model=self.model)

                for key, value in epoch_logs.items():
                    self.training_history.setdefault(key, []).append(value)

                should_stop = False
                for callback in self.callbacks:
                    if hasattr(callback, 'should_stop') and callback.should_stop():
                        should_stop = True
                        logger.info(f"Early stopping triggered by {type(callback).__name__}")
                        break

                if should_stop:
                    break

        except KeyboardInterrupt:
            logger.info("Training interrupted by user")

        except Exception as e:
            logger.error(f"Training failed with error: {e}")
            raise

        finally:
            for callback in self.callbacks:
                callback.on_train_end(logs=self.training_history, model=self.model)

        logger.info("Training completed")
        return self.get_training_history()

    def get_training_history(self) -> Dict[str, List[float]]:
        """Get training history."""
        return {key: list(values) for key, values in self.training_history.items()}


def fit(
    model: RestrictedBoltzmannMachine,
    data: Any,
    persistent: bool = True,
    learning_rate: float = 0.1,
    epochs: int = 10,
    batch_size: int = 100,
    gibbs_steps: int = 1,
    callbacks: Optional[List[Callback]] = None,
    sample_size: int = 10000,
) -> Dict[str, List[float]]:
    """
    Train an RBM on ``data`` (one sample per column, values in [0, 1]).

    Returns:
        history: ``pseudo_likelihood`` and ``epoch_time`` per epoch
    """
    if int(epochs) < 0:
        raise InvalidConfiguration(f"epochs must be non-negative, got {epochs}")

    loop = TrainingLoop(
        model,
        data,
        persistent=persistent,
        learning_rate=learning_rate,
        batch_size=batch_size,
        gibbs_steps=gibbs_steps,
        callbacks=callbacks,
        sample_size=sample_size,
    )
    return loop.train(epochs)
