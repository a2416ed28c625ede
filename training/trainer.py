"""
Adaptive alternating CGAN training.

Each outer iteration trains D until it is confident on real samples and
stable on generated ones, then trains G through the combined graph until D's
confidence on generated samples reaches a goal that tightens over time:

    goal(i) = real_confidence - fake_identity(i)

Both phases check their stopping rule every ``check_interval`` fit calls and
give up after a configured number of fit calls, reporting non-convergence
instead of looping forever.
"""

import logging
import os
from contextlib import ExitStack
from dataclasses import dataclass, field
from typing import List, Optional

import torch
from tqdm import tqdm

from models.cgan import ModelTriple
from models.nodes import (
    DISCRIMINATOR_LABEL_INPUT_NAME,
    DISCRIMINATOR_OUTPUT_NAME,
    DISCRIMINATOR_PIC_INPUT_NAME,
    GENERATOR_LABEL_INPUT_NAME,
    GENERATOR_NOISE_INPUT_NAME,
)
from utils.data import LoopingIterator
from utils.images import save_sample_grid

from .config import HyperParameters, TrainingConfig
from .evaluate import evaluate
from .sampling import class_labels, generate, random_class_labels, sample_noise
from .stats import StatsLog
from .stopping import (
    PhaseResult,
    discriminator_separates,
    discriminator_stable,
    fake_delta,
    generator_fools,
)

logger = logging.getLogger(__name__)


@dataclass
class IterationResult:
    iteration: int
    fake_identity: float
    discriminator: PhaseResult
    generator: PhaseResult
    sample_path: Optional[str] = None
    eval_scores: Optional[tuple] = None


@dataclass
class TrainingHistory:
    iterations: List[IterationResult] = field(default_factory=list)
    sample_paths: List[str] = field(default_factory=list)
    save_path: Optional[str] = None

    @property
    def non_converged(self) -> List[IterationResult]:
        return [r for r in self.iterations if not (r.discriminator.converged and r.generator.converged)]


class AdaptiveTrainer:
    """
    Runs the outer D/G alternation on one ``ModelTriple``.

    Args:
        triple: Graphs to train; owned by this trainer for the whole run
        data: Looping iterator of real (features, one-hot labels) batches
        hp: Hyperparameters of the run
        config: Run constants
        eval_data: Optional held-out iterator; when given, evaluation
            runs after every outer iteration
        writer: Optional TensorBoard SummaryWriter
    """

    def __init__(
        self,
        triple: ModelTriple,
        data: LoopingIterator,
        hp: HyperParameters,
        config: TrainingConfig,
        eval_data: Optional[LoopingIterator] = None,
        writer=None,
    ):
        self.triple = triple
        self.data = data
        self.hp = hp
        self.config = config
        self.eval_data = eval_data
        self.writer = writer
        self.device = config.device
        self.rng = torch.Generator().manual_seed(hp.seed)
        self.d_stats: Optional[StatsLog] = None
        self.g_stats: Optional[StatsLog] = None

    # ==================== Stopping rules ====================

    def discriminator_done(self, real_avg: float, fake_avg: float, delta: float, iteration: int) -> bool:
        if self.config.d_stop_rule == "threshold":
            return discriminator_separates(
                real_avg, fake_avg, self.hp.real_confidence, self.hp.fake_identity(iteration)
            )
        return discriminator_stable(real_avg, delta, self.hp.real_confidence, self.config.delta_epsilon)

    def generator_done(self, fake_avg: float, iteration: int) -> bool:
        return generator_fools(fake_avg, self.hp.real_confidence, self.hp.fake_identity(iteration))

    # ==================== Phase D ====================

    def train_discriminator(self, iteration: int) -> PhaseResult:
        """
        Train D on real-then-fake batches until its stopping rule holds.

        Real samples are labeled 1 and generated samples 0. D's confidence on
        each half is averaged over windows of ``check_interval`` fit calls.
        """
        cfg = self.config
        discriminator = self.triple.discriminator
        real_sum = fake_sum = 0.0
        count = 0
        previous_fake_avg = None
        real_avg = fake_avg = loss = None

        fit_calls = 0
        while fit_calls < cfg.max_d_fit_calls:
            real, labels = self.data.next_batch()
            real = real.to(self.device)
            labels = (labels * self.hp.label_amplifier).to(self.device)
            b = real.size(0)

            fake = generate(self.triple.generator, sample_noise(b, cfg.noise_dim, self.rng, self.device), labels)

            # real pics stacked on top of fake pics: first b rows are 1, next b rows are 0
            inputs = {
                DISCRIMINATOR_PIC_INPUT_NAME: torch.cat([real, fake]),
                DISCRIMINATOR_LABEL_INPUT_NAME: torch.cat([labels, labels]),
            }
            targets = torch.cat([torch.ones(b, 1), torch.zeros(b, 1)]).to(self.device)
            loss = discriminator.fit(inputs, {DISCRIMINATOR_OUTPUT_NAME: targets})
            fit_calls += 1

            scores = discriminator.output(inputs)
            real_sum += scores[:b].sum().item()
            fake_sum += scores[b:].sum().item()
            count += b

            if fit_calls % cfg.check_interval == 0:
                real_avg = real_sum / count
                fake_avg = fake_sum / count
                delta = fake_delta(fake_avg, previous_fake_avg)
                previous_fake_avg = fake_avg
                real_sum = fake_sum = 0.0
                count = 0

                logger.info(
                    f"Training D {fit_calls} times at iter. {iteration}. "
                    f"Current realPicAvg: {real_avg:.4f}, fakePicAvg: {fake_avg:.4f}, delta: {delta:.6f}"
                )
                self._record(self.d_stats, iteration=iteration, fit_calls=fit_calls, loss=loss,
                             real_avg=real_avg, fake_avg=fake_avg,
                             delta=delta if delta != float("inf") else None)

                if self.discriminator_done(real_avg, fake_avg, delta, iteration):
                    logger.info(f"D done at iter. {iteration} with realPicAvg: {real_avg:.4f}, fakePicAvg: {fake_avg:.4f}")
                    return PhaseResult(True, fit_calls, real_avg, fake_avg, loss)

        logger.warning(
            f"D did not converge at iter. {iteration} after {fit_calls} fit calls "
            f"(realPicAvg: {real_avg}, fakePicAvg: {fake_avg}); continuing with current parameters"
        )
        return PhaseResult(False, fit_calls, real_avg, fake_avg, loss)

    # ==================== Phase G ====================

    def train_generator(self, iteration: int) -> PhaseResult:
        """
        Train G through the combined graph until D is fooled enough.

        Generated samples are labeled 1 so that G learns to make D score them
        as real. Only the G nodes of the combined graph are updated.
        """
        cfg = self.config
        combined = self.triple.combined
        b = cfg.batch_size
        targets = {DISCRIMINATOR_OUTPUT_NAME: torch.ones(b, 1).to(self.device)}
        fake_avg = loss = None

        fit_calls = 0
        while fit_calls < cfg.max_g_fit_calls:
            inputs = {
                GENERATOR_NOISE_INPUT_NAME: sample_noise(b, cfg.noise_dim, self.rng, self.device),
                GENERATOR_LABEL_INPUT_NAME: random_class_labels(
                    b, cfg.label_dim, self.hp.label_amplifier, self.rng, self.device
                ),
            }
            loss = combined.fit(inputs, targets)
            fit_calls += 1

            if fit_calls % cfg.check_interval == 0:
                fake_avg = combined.output(inputs).mean().item()
                logger.info(f"Training G {fit_calls} times at iter. {iteration}. Current fakePicAvg: {fake_avg:.4f}")
                self._record(self.g_stats, iteration=iteration, fit_calls=fit_calls, loss=loss, fake_avg=fake_avg)

                if self.generator_done(fake_avg, iteration):
                    logger.info(f"G done at iter. {iteration} with fakePicAvg: {fake_avg:.4f}")
                    return PhaseResult(True, fit_calls, fake_avg=fake_avg, loss=loss)

        logger.warning(
            f"G did not converge at iter. {iteration} after {fit_calls} fit calls "
            f"(fakePicAvg: {fake_avg}, goal: {self.hp.generator_goal(iteration):.4f}); "
            f"continuing with current parameters"
        )
        return PhaseResult(False, fit_calls, fake_avg=fake_avg, loss=loss)

    # ==================== Sampling ====================

    def sample(self, iteration: int) -> str:
        """Write one generated sample per class as a grid PNG named by iteration."""
        cfg = self.config
        logger.info(f"Sampling number picture at iter. {iteration}")
        self.triple.synchronize()
        labels = class_labels(cfg.label_dim, self.hp.label_amplifier, self.device)
        samples = generate(
            self.triple.generator, sample_noise(cfg.label_dim, cfg.noise_dim, self.rng, self.device), labels
        )
        path = os.path.join(cfg.output_dir, f"iter{iteration}.png")
        save_sample_grid(samples, path, cfg.pic_height, cfg.pic_width, nrow=cfg.grid_columns)
        return path

    # ==================== Outer loop ====================

    def run(self) -> TrainingHistory:
        """
        Train for ``config.iterations`` outer iterations, then save the triple.

        Write failures (samples, checkpoints, final save) propagate and abort
        the run.
        """
        cfg = self.config
        os.makedirs(cfg.output_dir, exist_ok=True)
        history = TrainingHistory()

        with ExitStack() as logs:
            self.d_stats = logs.enter_context(
                StatsLog(os.path.join(cfg.output_dir, "discriminator.stats.jsonl"), "Discriminator", self.writer)
            )
            self.g_stats = logs.enter_context(
                StatsLog(os.path.join(cfg.output_dir, "gan.stats.jsonl"), "GAN", self.writer)
            )
            self.triple.synchronize()
            pbar = tqdm(range(cfg.iterations), desc="CGAN", disable=not cfg.show_progress)
            for i in pbar:
                fake_identity = self.hp.fake_identity(i)
                logger.info(
                    f"Current fakeIdentity at iter. {i}: {fake_identity:.4f}, "
                    f"G's goal: {self.hp.generator_goal(i):.4f}"
                )

                d_result = self.train_discriminator(i)
                self.triple.synchronize()
                g_result = self.train_generator(i)
                self.triple.synchronize()
                result = IterationResult(i, fake_identity, d_result, g_result)

                if cfg.sample_interval and i % cfg.sample_interval == 0:
                    result.sample_path = self.sample(i)
                    history.sample_paths.append(result.sample_path)

                if self.eval_data is not None:
                    result.eval_scores = evaluate(self.triple, self.eval_data, self.hp, cfg, self.rng)
                    logger.info(
                        f"Eval at iter. {i}: realPicAvg: {result.eval_scores[0]:.4f}, "
                        f"fakePicAvg: {result.eval_scores[1]:.4f}"
                    )

                if cfg.checkpoint_interval and (i + 1) % cfg.checkpoint_interval == 0:
                    logger.info(f"Checkpoint hit at iter. {i}")
                    self.triple.save(os.path.join(cfg.output_dir, "checkpoints", f"iter_{i}"))

                history.iterations.append(result)
                pbar.set_postfix(
                    d_fits=d_result.fit_calls,
                    g_fits=g_result.fit_calls,
                    fake=f"{g_result.fake_avg:.3f}" if g_result.fake_avg is not None else "n/a",
                )

        history.save_path = os.path.join(cfg.output_dir, "save")
        self.triple.save(history.save_path)
        logger.info("Done!")
        return history

    def _record(self, stats: Optional[StatsLog], **values) -> None:
        if stats is not None:
            stats.record(**values)
