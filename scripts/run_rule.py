#!/usr/bin/env python3
"""
Rule Runner

Compiles a rule script (a built-in preset or a file), seeds a grid through the
rule's randomize() hook and advances it for a number of generations, logging a
fault summary per generation. Optionally writes a JSON checkpoint at the end.
"""

import argparse
import logging
import sys
from pathlib import Path

# Configure logging
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

from cellscript import CompileError, EngineConfig, FatalError, Stepper, Topology, TopologyKind
from cellscript.persistence import save
from cellscript.presets import get_preset, list_presets


def run(source, topology, generations, config, seed=None, checkpoint=None):
    """Run a rule and return the list of StepReports."""
    with Stepper(config) as stepper:
        stepper.compile(source)
        stepper.resize(topology)
        logger.info(f"Grid: {stepper.grid!r}")
        logger.info(f"Rule: {stepper.rule!r}")

        if stepper.rule.has_hook("randomize"):
            stepper.randomize(seed)
        else:
            logger.info("Rule has no randomize() hook; starting from default cells")

        reports = []
        for _ in range(generations):
            report = stepper.step()
            reports.append(report)
            if report.fault_count or report.generation % 10 == 0:
                logger.info(report.summary())

        total_faults = sum(r.fault_count for r in reports)
        logger.info(f"Completed {len(reports)} generations with {total_faults} cell faults")
        logger.info(f"Final grid:\n{stepper.grid}")

        if checkpoint:
            save(stepper, checkpoint)
        return reports


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Run a cellular automaton rule script")
    source_group = parser.add_mutually_exclusive_group()
    source_group.add_argument("--preset", default="life", choices=list_presets(), help="Built-in rule")
    source_group.add_argument("--rule-file", type=Path, help="Path to a rule script")
    parser.add_argument("--topology", default="moore", choices=[k.value for k in TopologyKind])
    parser.add_argument("--edge", default="wrap", choices=["wrap", "clamp", "dead"])
    parser.add_argument("--width", type=int, default=32, help="Grid width (cells)")
    parser.add_argument("--height", type=int, default=32, help="Grid height (cells)")
    parser.add_argument("--generations", type=int, default=50, help="Generations to run")
    parser.add_argument("--seed", type=int, default=None, help="Seed for randomize()")
    parser.add_argument("--workers", type=int, default=None, help="Worker threads per step")
    parser.add_argument("--checkpoint", type=Path, default=None, help="Write a JSON checkpoint here")
    parser.add_argument("--verbose", action="store_true", help="Log per-cell faults")

    args = parser.parse_args()
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    config = EngineConfig.from_env()
    if args.workers is not None:
        config.workers = max(1, args.workers)

    source = args.rule_file.read_text() if args.rule_file else get_preset(args.preset)
    topology = Topology(args.topology, args.edge, args.width, args.height)

    try:
        run(source, topology, args.generations, config, seed=args.seed, checkpoint=args.checkpoint)
    except CompileError as e:
        logger.error(f"Rule failed to compile: {e}")
        sys.exit(2)
    except FatalError as e:
        logger.error(f"Engine fault: {e}")
        sys.exit(1)
