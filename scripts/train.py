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
Training script for rbmkit models.

Loads an experiment configuration and a .npy data matrix, trains an RBM and
logs the pseudo-likelihood after every epoch.

Usage:
    # Basic training (features in rows, samples in columns)
    python scripts/train.py --exp=base --data=train.npy

    # CD-5 with overrides, data stored one sample per row
    python scripts/train.py --exp=base --data=train.npy --samples-in-rows \
        --hidden=128 --k=5 --cd --lr=0.05

    # Save hidden features after training
    python scripts/train.py --exp=base --data=train.npy --transform-out=hidden.npy
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Any, Dict

import numpy as np
import yaml

from rbmkit.configs import ConfigManager
from rbmkit.training import fit, get_standard_callbacks

logger = logging.getLogger(__name__)


def parse_arguments() -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description='Train rbmkit models',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )

    parser.add_argument('--exp', type=str, default='base',
                       help='Experiment name (config file in experiments/)')
    parser.add_argument('--config', type=str,
                       help='Explicit config path (overrides --exp)')
    parser.add_argument('--data', type=str, required=True,
                       help='Training data (.npy), values in [0, 1]')
    parser.add_argument('--samples-in-rows', action='store_true',
                       help='Data stores one sample per row instead of per column')

    # Model configuration overrides
    parser.add_argument('--hidden', type=int, help='Number of hidden units')
    parser.add_argument('--visible_type', type=str, choices=['bernoulli', 'gaussian'],
                       help='Visible unit type')
    parser.add_argument('--momentum', type=float, help='Momentum')
    parser.add_argument('--seed', type=int, help='Random seed')

    # Training configuration overrides
    parser.add_argument('--k', type=int, help='Gibbs steps per gradient estimate')
    parser.add_argument('--epochs', type=int, help='Training epochs')
    parser.add_argument('--batch_size', type=int, help='Batch size')
    parser.add_argument('--lr', type=float, help='Learning rate')
    parser.add_argument('--cd', action='store_true', help='Use CD instead of PCD')
    parser.add_argument('--patience', type=int,
                       help='Stop after this many epochs without improvement')

    parser.add_argument('--transform-out', type=str,
                       help='Write hidden means of the data to this .npy file')
    parser.add_argument('--dry_run', action='store_true', help='Dry run without training')
    parser.add_argument('--log_level', type=str,
                       choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
                       help='Logging level (defaults to logging.level in the config)')

    return parser.parse_args()


def build_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    """Translate command line arguments into dot-notation config overrides."""
    overrides = {}

    if args.hidden is not None:
        overrides['model.n_hidden'] = args.hidden
    if args.visible_type:
        overrides['model.visible_type'] = args.visible_type
    if args.momentum is not None:
        overrides['model.momentum'] = args.momentum
    if args.seed is not None:
        overrides['model.random_seed'] = args.seed

    if args.k is not None:
        overrides['training.gibbs_steps'] = args.k
    if args.epochs is not None:
        overrides['training.epochs'] = args.epochs
    if args.batch_size is not None:
        overrides['training.batch_size'] = args.batch_size
    if args.lr is not None:
        overrides['training.learning_rate'] = args.lr
    if args.cd:
        overrides['training.persistent'] = False

    return overrides


def load_data(path: str, samples_in_rows: bool) -> np.ndarray:
    """Load a data matrix with features in rows and samples in columns."""
    data = np.load(path)
    if samples_in_rows:
        data = data.T
    logger.info(f"Loaded data {data.shape} from {path}")
    return data


def main():
    """Main training function."""
    args = parse_arguments()

    config_path = Path(args.config) if args.config else Path(f'experiments/{args.exp}.yaml')
    config = ConfigManager.load(config_path, overrides=build_overrides(args))

    log_level = args.log_level or config.get('logging', {}).get('level', 'INFO')
    logging.basicConfig(
        level=getattr(logging, str(log_level).upper()),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[logging.StreamHandler(sys.stdout)]
    )

    if args.dry_run:
        logger.info("Dry run mode - configuration loaded successfully")
        logger.info(f"Config:\n{yaml.safe_dump(config, default_flow_style=False)}")
        return

    try:
        data = load_data(args.data, args.samples_in_rows)
        model = ConfigManager.build_model(config, n_visible=data.shape[0])
        logger.info(f"Created model: {model}")

        callbacks = get_standard_callbacks(patience=args.patience) if args.patience else None
        history = fit(model, data, callbacks=callbacks, **ConfigManager.training_kwargs(config))

        if history['pseudo_likelihood']:
            logger.info(f"Final pseudo-likelihood: {history['pseudo_likelihood'][-1]:.4f}")

        if args.transform_out:
            hidden = model.transform(data).cpu().numpy()
            np.save(args.transform_out, hidden)
            logger.info(f"Saved hidden features {hidden.shape} to {args.transform_out}")

        logger.info(f"Training completed successfully for experiment: {config['name']}")

    except Exception as e:
        logger.error(f"Training failed: {e}")
        raise


if __name__ == "__main__":
    main()
