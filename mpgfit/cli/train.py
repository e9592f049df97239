# mpgfit/cli/train.py

import argparse
import json
from pathlib import Path

from mpgfit.config import DOWNLOADS_DIR, FIGURES_DIR, LOG_LEVEL, parse_seed
from mpgfit.handle import ModelHandle
from mpgfit.logging_config import setup_logging
from mpgfit.model_io import save_model
from mpgfit.train import TrainConfig, run
from mpgfit.viz import FigureSink, NullSink


def parse_args(argv=None) -> argparse.Namespace:
    defaults = TrainConfig()
    parser = argparse.ArgumentParser(
        description="Train the horsepower -> mpg regression model."
    )

    parser.add_argument("--epochs", type=int, default=defaults.epochs)
    parser.add_argument("--batch-size", type=int, default=defaults.batch_size)
    parser.add_argument(
        "--seed",
        type=parse_seed,
        default=defaults.seed,
        help="Random seed for shuffling and weight init, or 'none' (default from MPGFIT_RANDOM_SEED).",
    )
    parser.add_argument("--dataset-url", default=defaults.dataset_url)

    parser.add_argument(
        "--figures-dir",
        type=Path,
        default=FIGURES_DIR,
        help="Where to render the data/summary/progress/evaluation charts.",
    )
    parser.add_argument(
        "--no-figures",
        action="store_true",
        help="Skip rendering charts.",
    )

    parser.add_argument(
        "--save-model-name",
        default=None,
        help="If set, save the trained model as <name>.json + <name>.weights.bin.",
    )
    parser.add_argument("--output-dir", type=Path, default=DOWNLOADS_DIR)
    parser.add_argument("--log-level", default=LOG_LEVEL)

    return parser.parse_args(argv)


def main():
    args = parse_args()
    setup_logging(args.log_level)

    cfg = TrainConfig(
        batch_size=args.batch_size,
        epochs=args.epochs,
        seed=args.seed,
        dataset_url=args.dataset_url,
    )
    sink = NullSink() if args.no_figures else FigureSink(args.figures_dir)
    handle = ModelHandle()

    result = run(cfg, sink=sink, handle=handle)
    output = result.as_dict()

    if args.save_model_name:
        saved = save_model(handle, directory=args.output_dir, base_name=args.save_model_name)
        output["saved"] = [str(p) for p in saved.paths]

    print(json.dumps(output, indent=2))


if __name__ == "__main__":
    main()
