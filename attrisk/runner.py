"""
Orchestrates attribute risk estimation across the confidential dataset.

Coordinates per-record estimates using RecordRiskEstimator, in row order.
Outputs one RiskRecord per confidential row plus summary tables.
"""

import logging
from typing import Callable, Dict, Iterator, List, Optional, Sequence
from pathlib import Path

import numpy as np
import pandas as pd
from tqdm import tqdm

from .config import RiskConfig
from .estimator import RecordRiskEstimator, RiskRecord
from .sampler import prepare_steps, synthetic_log_likelihood
from .steps import SynthesisStep

# Configure logging
logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


class RiskSet:
    """
    Container for risk estimates across records.

    Index-aligned with the rows that were estimated (all rows of the
    confidential dataset unless a subset was requested).

    Attributes:
        records (List[RiskRecord]): One RiskRecord per estimated row
        outcomes (List[str]): Synthesized variables, in synthesis order
    """

    def __init__(self, records: List[RiskRecord], outcomes: Sequence[str]):
        self.records = list(records)
        self.outcomes = list(outcomes)

    def __len__(self) -> int:
        return len(self.records)

    def __iter__(self) -> Iterator[RiskRecord]:
        return iter(self.records)

    def __getitem__(self, position: int) -> RiskRecord:
        return self.records[position]

    def true_value_probs(self) -> np.ndarray:
        return np.array([r.true_value_prob for r in self.records])

    def to_frame(self) -> pd.DataFrame:
        """One summary row per record."""
        return pd.DataFrame([r.to_dict() for r in self.records])

    def ranks_frame(self) -> pd.DataFrame:
        """Long-format rank tables of every record."""
        frames = []
        for record in self.records:
            ranks = record.ranks.copy()
            ranks.insert(0, 'record_id', record.record_id)
            frames.append(ranks)
        if not frames:
            return pd.DataFrame(columns=['record_id', 'rank', 'prob'] + self.outcomes)
        return pd.concat(frames, ignore_index=True)

    def summary(self) -> Dict[str, float]:
        """Summary statistics of true-value probabilities across records."""
        probs = self.true_value_probs()
        if len(probs) == 0:
            return {'n_records': 0}

        summary = {
            'n_records': len(probs),
            'mean_true_value_prob': float(np.mean(probs)),
            'median_true_value_prob': float(np.median(probs)),
            'max_true_value_prob': float(np.max(probs)),
            'pct_true_rank_1': float(np.mean([r.true_rank == 1 for r in self.records]) * 100),
            'pct_above_random_guess': float(np.mean(
                [r.true_value_prob > 1.0 / r.full_prob.size for r in self.records]
            ) * 100),
        }
        for axis, name in enumerate(self.outcomes):
            marginals = [r.true_marginals[axis] for r in self.records]
            diffs = [r.marginal_abs_diffs[axis] for r in self.records]
            summary[f'mean_marginal_{name}'] = float(np.mean(marginals))
            summary[f'mean_abs_diff_{name}'] = float(np.mean(diffs))
        return summary


class AttributeRiskRunner:
    """
    Orchestrates risk estimation across every confidential record.

    This class manages the estimation workflow:
        1. Validates the configuration and synthesis steps once
        2. Computes synthetic-replicate likelihoods once (shared by records)
        3. Estimates each record in row order
        4. Collects results into a RiskSet and exports them

    A failure on any record propagates and aborts the run.

    Attributes:
        steps (List[SynthesisStep]): Synthesis steps in synthesis order
        confidential (pd.DataFrame): Confidential dataset
        synthetic (List[pd.DataFrame]): Synthetic replicates
        config (RiskConfig): Estimator configuration
        estimator (RecordRiskEstimator): Per-record estimator

    Example:
        >>> runner = AttributeRiskRunner(steps, confidential, [syn1, syn2], RiskConfig(iterations=50))
        >>> risks = runner.run()
        >>> runner.export_results(risks, "results/tables")
    """

    def __init__(
        self,
        steps: Sequence[SynthesisStep],
        confidential: pd.DataFrame,
        synthetic: Sequence[pd.DataFrame],
        config: Optional[RiskConfig] = None
    ):
        self.steps = list(steps)
        self.confidential = confidential
        self.synthetic = [synthetic] if isinstance(synthetic, pd.DataFrame) else list(synthetic)
        self.config = config or RiskConfig()

        # Configuration errors abort before any record is processed
        self.config.validate(len(self.steps))
        prepared = prepare_steps(self.steps, confidential, self.config)

        logger.info("Computing synthetic data likelihoods...")
        log_liks = [
            synthetic_log_likelihood(prepared, syn, self.config.iterations)
            for syn in self.synthetic
        ]

        self.estimator = RecordRiskEstimator(
            self.steps, confidential, self.synthetic, self.config,
            prepared=prepared, synthetic_log_liks=log_liks,
        )

        logger.info(f"AttributeRiskRunner initialized with {len(confidential)} records, "
                    f"{len(self.steps)} synthesis steps and {len(self.synthetic)} synthetic replicates")

    @property
    def outcomes(self) -> List[str]:
        return [step.outcome for step in self.steps]

    def run(
        self,
        records: Optional[Sequence[int]] = None,
        show_progress: bool = True,
        progress_callback: Optional[ProgressCallback] = None
    ) -> RiskSet:
        """
        Estimate risk for every record (or a subset) in row order.

        Args:
            records: Optional 0-based row positions to estimate.
                     If None, estimates all rows.
            show_progress: Whether to show progress bar
            progress_callback: Called with (done, total) after each record

        Returns:
            RiskSet index-aligned with the estimated rows
        """
        positions = list(records) if records is not None else list(range(len(self.confidential)))
        n_records = len(positions)

        logger.info(f"Estimating attribute risk for {n_records} records "
                    f"(H={self.config.iterations}, policy={self.config.guess_policy()})...")

        results = []
        iterator = tqdm(positions, desc="Attribute risk") if show_progress else positions

        for done, position in enumerate(iterator, 1):
            results.append(self.estimator.estimate(position))
            if progress_callback is not None:
                progress_callback(done, n_records)

        logger.info(f"Completed attribute risk estimation for {n_records} records")

        return RiskSet(results, self.outcomes)

    def export_results(
        self,
        risk_set: RiskSet,
        output_dir: str,
        prefix: str = ""
    ) -> Dict[str, str]:
        """
        Export risk estimates to CSV files.

        Args:
            risk_set: RiskSet to export
            output_dir: Directory for output files
            prefix: Optional prefix for filenames

        Returns:
            Dict mapping result type to file path
        """
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)

        file_prefix = f"{prefix}_" if prefix else ""

        exported_files = {}

        # Export per-record summary
        summary_path = output_dir / f"{file_prefix}record_risk.csv"
        risk_set.to_frame().to_csv(summary_path, index=False)
        exported_files['record_risk'] = str(summary_path)

        # Export rank tables (long format)
        ranks_path = output_dir / f"{file_prefix}rank_tables.csv"
        risk_set.ranks_frame().to_csv(ranks_path, index=False)
        exported_files['rank_tables'] = str(ranks_path)

        logger.info(f"Exported results to {output_dir}")

        return exported_files


def attribute_risk(
    steps: Sequence[SynthesisStep],
    confidential: pd.DataFrame,
    synthetic: Sequence[pd.DataFrame],
    config: Optional[RiskConfig] = None,
    show_progress: bool = True
) -> RiskSet:
    """
    Convenience function to estimate risk for every confidential record.

    Args:
        steps: Synthesis steps in synthesis order
        confidential: Confidential dataset
        synthetic: Synthetic replicate(s)
        config: Estimator configuration (defaults to RiskConfig())
        show_progress: Whether to show progress bar

    Returns:
        RiskSet with one RiskRecord per confidential row
    """
    runner = AttributeRiskRunner(steps, confidential, synthetic, config)
    return runner.run(show_progress=show_progress)
