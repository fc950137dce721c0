"""Batch encoding pipeline: fit on a training file, encode every dataset."""

import argparse
from pathlib import Path
from typing import Dict, Sequence

import joblib
import pandas as pd

from catembed.features.encoders import LevelEncoder
from catembed.utils import Config, load_config, get_logger
from catembed.utils.config import EncodingSettings
from catembed.utils.exceptions import DataLoadError
from catembed.utils.logger import get_run_id, log_session_end, log_session_start

logger = get_logger(__name__)


def load_dataset(path: Path) -> pd.DataFrame:
    """Read a parquet or CSV file."""
    if not path.exists():
        raise DataLoadError(f"Dataset not found: {path}")

    try:
        if path.suffix == ".parquet":
            df = pd.read_parquet(path)
        elif path.suffix == ".csv":
            df = pd.read_csv(path)
        else:
            raise DataLoadError(f"Unsupported file type '{path.suffix}' for {path}")
    except DataLoadError:
        raise
    except Exception as e:
        raise DataLoadError(f"Could not read {path}: {e}") from e

    logger.info(f"Loaded {len(df):,} rows from {path.name}")
    return df


def run_encoding(
    train_path: Path,
    output_dir: Path,
    settings: EncodingSettings,
    apply_paths: Sequence[Path] = ()
) -> Dict[str, Path]:
    """Fit encoders on the training file and write encoded copies of every input."""

    logger.info("=" * 50)
    logger.info(f"Starting {settings.mode} encoding of {len(settings.columns)} columns")
    logger.info("=" * 50)

    train_df = load_dataset(train_path)
    missing = [c for c in [settings.outcome_column] + list(settings.columns) if c not in train_df.columns]
    if missing:
        raise DataLoadError(f"Training data is missing columns: {missing}")

    sample_weight = None
    if settings.weight_column is not None:
        if settings.weight_column not in train_df.columns:
            raise DataLoadError(f"Training data is missing weight column '{settings.weight_column}'")
        sample_weight = train_df[settings.weight_column].to_numpy()

    encoder = LevelEncoder(**settings.to_encoder_params())
    encoder.fit(train_df, train_df[settings.outcome_column], sample_weight=sample_weight)

    output_dir.mkdir(parents=True, exist_ok=True)
    paths = {
        "train": output_dir / f"{train_path.stem}_encoded.parquet",
        "encoder": output_dir / "level_encoder.joblib",
        "tables": output_dir / "encoding_tables.parquet",
    }

    encoder.transform(train_df).to_parquet(paths["train"], index=False)
    logger.info(f"Saved train: {paths['train']}")

    for path in apply_paths:
        out = output_dir / f"{path.stem}_encoded.parquet"
        encoder.transform(load_dataset(path)).to_parquet(out, index=False)
        paths[path.stem] = out
        logger.info(f"Saved {path.stem}: {out}")

    summary = encoder.summary()
    summary["level"] = summary["level"].astype(str)
    summary.insert(0, "run_id", get_run_id())
    summary.to_parquet(paths["tables"], index=False)
    joblib.dump(encoder, paths["encoder"])

    logger.info(f"Saved tables: {paths['tables']}")
    logger.info(f"Saved encoder: {paths['encoder']}")

    return paths


def run_pipeline(config: Config) -> Dict[str, Path]:
    """Run the encoding pipeline described by ``config``."""

    log_session_start(logger)
    paths = run_encoding(
        train_path=config.paths.train_data,
        output_dir=config.paths.output_dir,
        settings=config.encoding,
        apply_paths=config.paths.apply_data,
    )
    log_session_end(logger)
    return paths


def main():
    parser = argparse.ArgumentParser(description="Fit and apply categorical encodings")
    parser.add_argument("--config", type=Path, default=Path("catembed/config/config.yaml"))
    args = parser.parse_args()

    config = load_config(args.config)
    run_pipeline(config)


if __name__ == "__main__":
    main()
