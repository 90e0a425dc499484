#!/usr/bin/env python3
"""
main.py - CLI for attribute disclosure risk of synthetic data.

Usage:
    python main.py --config analysis.yaml --output-dir results/
"""

import argparse
import logging
import sys
import time
from pathlib import Path
from datetime import datetime

import numpy as np
import yaml

# Import local modules
from attrisk.config import RiskConfig, load_config
from attrisk.data_loader import load_inputs
from attrisk.runner import AttributeRiskRunner
from attrisk.visualization import create_risk_figures


def setup_logging(log_level: str = "INFO", log_file: str = None) -> None:
    """Configure logging for the application."""
    handlers = [logging.StreamHandler(sys.stdout)]

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers
    )


def run_full_analysis(
    config: dict,
    output_dir: str,
    sample_size: int = None,
    random_seed: int = 42,
    iterations: int = None,
    make_plot: bool = False
) -> dict:
    """
    Run the complete attribute risk pipeline.

    Args:
        config: Parsed analysis configuration (data, steps, risk sections)
        output_dir: Path for output files
        sample_size: Optional number of records to estimate (None = all)
        random_seed: Random seed for record sampling
        iterations: Optional override of the number of posterior draws H
        make_plot: Whether to save the random-guess figure

    Returns:
        Dict with results summary
    """
    start_time = time.time()
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger(__name__)

    # Step 1: Load inputs
    logger.info("Loading confidential data, synthetic replicates and posterior draws...")

    confidential, synthetic, steps = load_inputs(config)

    risk_config = RiskConfig.from_dict(config.get('risk') or {})
    if iterations is not None:
        risk_config.iterations = iterations

    logger.info(f"Loaded {len(confidential)} confidential records")
    logger.info(f"Synthesized variables: {[s.outcome for s in steps]}")

    # Sample WHICH records to estimate; guess levels still come from all records
    positions = None
    n_estimated = len(confidential)
    if sample_size and sample_size < len(confidential):
        logger.info(f"Sampling {sample_size} records for estimation")
        rng = np.random.default_rng(random_seed)
        positions = sorted(rng.choice(len(confidential), size=sample_size, replace=False).tolist())
        n_estimated = sample_size

    # Step 2: Estimate risk
    logger.info("Estimating attribute disclosure risk...")

    runner = AttributeRiskRunner(steps, confidential, synthetic, risk_config)
    risk_set = runner.run(records=positions, show_progress=True)

    # Export results
    tables_dir = output_dir / "tables"
    table_paths = runner.export_results(risk_set, tables_dir)

    # Step 3: Generate figures
    figure_paths = []
    if make_plot:
        logger.info("Generating random-guess figure...")
        figure_paths = create_risk_figures(risk_set, output_dir=str(output_dir / "figures"))

    # Step 4: Generate summary report
    logger.info("Generating summary report...")

    elapsed_time = time.time() - start_time
    summary = risk_set.summary()

    report = {
        'analysis_timestamp': datetime.now().isoformat(),
        'elapsed_time_seconds': elapsed_time,
        'output_dir': str(output_dir),
        'n_records_confidential': len(confidential),
        'n_records_estimated': n_estimated,
        'n_synthetic_replicates': len(synthetic),
        'outcomes': runner.outcomes,
        'random_seed': random_seed,
        'risk_config': risk_config.to_dict(),
        'results_summary': summary,
        'table_paths': table_paths,
        'figure_paths': figure_paths,
    }

    # Save report
    report_path = output_dir / "analysis_report.yaml"
    with open(report_path, 'w') as f:
        yaml.dump(report, f, default_flow_style=False)

    logger.info(f"Analysis complete in {elapsed_time:.1f} seconds")
    logger.info(f"Results saved to: {output_dir}")

    # Print summary
    print("\n" + "=" * 60)
    print("ANALYSIS SUMMARY")
    print("=" * 60)
    print(f"Confidential records:     {len(confidential):,}")
    print(f"Records estimated:        {n_estimated:,}")
    print(f"Synthetic replicates:     {len(synthetic)}")
    print(f"Posterior draws (H):      {risk_config.iterations}")
    print(f"\nKey findings:")

    if summary.get('n_records'):
        print(f"    - Mean P(true values):   {summary['mean_true_value_prob']:.4f}")
        print(f"    - Max P(true values):    {summary['max_true_value_prob']:.4f}")
        print(f"    - {summary['pct_true_rank_1']:.1f}% of records ranked the truth first")
        print(f"    - {summary['pct_above_random_guess']:.1f}% of records beat a random guess")
        for name in runner.outcomes:
            print(f"    - Mean marginal P({name} = true): {summary[f'mean_marginal_{name}']:.4f}")

    print(f"\nOutput directory: {output_dir}")
    print("=" * 60)

    return report


def main():
    """Main entry point for CLI."""
    parser = argparse.ArgumentParser(
        description="Attribute Disclosure Risk for Sequentially Synthesized Data",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run every record of the configured dataset
  python main.py --config analysis.yaml

  # Estimate a random sample of 200 records with 100 posterior draws
  python main.py --config analysis.yaml --sample-size 200 --iterations 100

  # Also save the random-guess comparison figure
  python main.py --config analysis.yaml --output-dir results/ --plot
        """
    )

    parser.add_argument(
        '--config',
        type=str,
        required=True,
        help='Path to YAML analysis configuration (data, steps, risk)'
    )

    parser.add_argument(
        '--output-dir',
        type=str,
        default='results',
        help='Path for output files (default: results/)'
    )

    parser.add_argument(
        '--sample-size',
        type=int,
        default=None,
        help='Number of records to estimate (default: all records)'
    )

    parser.add_argument(
        '--seed',
        type=int,
        default=42,
        help='Random seed for record sampling (default: 42)'
    )

    parser.add_argument(
        '--iterations',
        type=int,
        default=None,
        help='Posterior draws used per estimate (default: from config, else 50)'
    )

    parser.add_argument(
        '--plot',
        action='store_true',
        help='Save the random-guess comparison figure'
    )

    parser.add_argument(
        '--log-level',
        type=str,
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        default='INFO',
        help='Logging level (default: INFO)'
    )

    parser.add_argument(
        '--log-file',
        type=str,
        help='Path to log file (optional)'
    )

    args = parser.parse_args()

    # Setup logging
    log_file = args.log_file or str(Path(args.output_dir) / 'attribute_risk.log')
    setup_logging(args.log_level, log_file)

    # Run analysis
    try:
        config = load_config(args.config)

        # Override args with config values
        output = config.get('output') or {}
        args.seed = output.get('random_seed', args.seed)
        args.sample_size = args.sample_size or output.get('sample_size')
        args.plot = args.plot or bool(output.get('plot', False))

        run_full_analysis(
            config=config,
            output_dir=args.output_dir,
            sample_size=args.sample_size,
            random_seed=args.seed,
            iterations=args.iterations,
            make_plot=args.plot
        )
        return 0
    except Exception as e:
        logging.error(f"Analysis failed: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
