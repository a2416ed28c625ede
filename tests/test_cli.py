"""Tests for the training CLI arguments and run config round trip through info.json."""

import json
import os

import pytest

from scripts.eval import load_run_config
from training.config import ExponentialSchedule, HyperParameters, TrainingConfig
from training.train_cgan import build_run_config, parse_args


class TestParseArgs:

    def test_defaults(self):
        args = parse_args([])
        assert args.label_amplifier == 7.0
        assert args.real_confidence == 0.9
        assert args.fake_identity == 0.6
        assert args.check_interval == 500
        assert args.d_stop_rule == "delta"
        assert args.out == "trainingProcess"
        assert args.seed is None

    def test_overrides(self):
        args = parse_args(["--iterations", "3", "--d_stop_rule", "threshold", "--fake_identity_half_life", "200"])
        assert args.iterations == 3
        assert args.d_stop_rule == "threshold"
        assert args.fake_identity_half_life == 200

    def test_rejects_unknown_rule(self):
        with pytest.raises(SystemExit):
            parse_args(["--d_stop_rule", "never"])


class TestRunConfig:

    def test_info_json_round_trip(self, tmp_path):
        """Configuration written at the start of a run rebuilds identically."""
        hp = HyperParameters(
            label_amplifier=5.0,
            fake_identity_schedule=ExponentialSchedule.from_half_life(0.5, 100),
            seed=42,
        )
        config = TrainingConfig(iterations=10, check_interval=50, output_dir=str(tmp_path), binarize=False)
        with open(os.path.join(tmp_path, "info.json"), "w") as f:
            json.dump({"hyperparameters": hp.to_dict(), "training": config.to_dict()}, f)

        loaded_hp, loaded_config = load_run_config(str(tmp_path))
        assert loaded_hp == hp
        assert loaded_config == config
        assert loaded_config.binarize is False

    def test_no_binarize_is_recorded(self, tmp_path):
        """--no_binarize reaches the saved config, so evaluation reads pixels the same way."""
        hp, config = build_run_config(parse_args(["--no_binarize", "--seed", "1", "--out", str(tmp_path)]))
        assert config.binarize is False
        assert config.to_dict()["binarize"] is False
        assert build_run_config(parse_args(["--seed", "1"]))[1].binarize is True

    def test_runs_without_binarize_field_load_binarized(self, tmp_path):
        """An info.json from before the field existed loads with the binarizing default."""
        training = TrainingConfig(output_dir=str(tmp_path)).to_dict()
        del training["binarize"]
        with open(os.path.join(tmp_path, "info.json"), "w") as f:
            json.dump({"hyperparameters": HyperParameters().to_dict(), "training": training}, f)
        _, config = load_run_config(str(tmp_path))
        assert config.binarize is True
