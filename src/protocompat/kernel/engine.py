"""Run a full compatibility check over two snapshots.

The matcher runs once in the calling thread. Diff and rule evaluation then
fan out per type pair on a thread pool; each task owns its pair and returns
its own finding list, and the lists are merged here in the calling thread.
"""

import logging
import os
import threading
from concurrent.futures import CancelledError, Future, ThreadPoolExecutor
from typing import List, Mapping, Optional

from protocompat.contracts import CheckResult, Finding
from .aggregate import aggregate
from .config import CheckerConfig
from .diff import diff_pair
from .matcher import TypePair, match_snapshots
from .model import SchemaSnapshot
from .rules import Rule, RuleContext, build_default_registry, evaluate_type, select_rules

logger = logging.getLogger(__name__)


def check_pair(pair: TypePair, rules: List[Rule], ctx: RuleContext) -> List[Finding]:
    """Diff one type pairing and evaluate every selected rule over it."""
    changes = diff_pair(pair)
    if not changes.events:
        return []
    return evaluate_type(changes, rules, ctx)


def _resolve_workers(config: CheckerConfig) -> int:
    if config.workers is not None:
        return config.workers
    return os.cpu_count() or 1


def run_check(
    base: SchemaSnapshot,
    candidate: SchemaSnapshot,
    config: Optional[CheckerConfig] = None,
    registry: Optional[Mapping[str, Rule]] = None,
    cancel_event: Optional[threading.Event] = None,
) -> CheckResult:
    """
    Check `candidate` against `base` and return the aggregated result.

    Setting `cancel_event` stops dispatch: tasks that have not started are
    skipped, in-flight tasks finish, and the verdict becomes "unknown".
    """
    if config is None:
        config = CheckerConfig()
    if registry is None:
        registry = build_default_registry()
    if cancel_event is None:
        cancel_event = threading.Event()

    rules = select_rules(registry, config)
    ctx = RuleContext(base=base, candidate=candidate, config=config)
    pairs = match_snapshots(base, candidate)
    logger.debug("Matched %d type pair(s); evaluating %d rule(s)", len(pairs), len(rules))

    def task(pair: TypePair) -> Optional[List[Finding]]:
        if cancel_event.is_set():
            return None
        return check_pair(pair, rules, ctx)

    findings: List[Finding] = []
    checked = 0
    skipped = 0
    with ThreadPoolExecutor(max_workers=_resolve_workers(config)) as pool:
        futures: List[Future] = []
        for pair in pairs:
            if cancel_event.is_set():
                break
            futures.append(pool.submit(task, pair))
        skipped += len(pairs) - len(futures)

        for future in futures:
            if cancel_event.is_set():
                future.cancel()
            try:
                result = future.result()
            except CancelledError:
                skipped += 1
                continue
            if result is None:
                skipped += 1
                continue
            findings.extend(result)
            checked += 1

    cancelled = cancel_event.is_set()
    if cancelled:
        logger.warning("Check cancelled: %d of %d type pair(s) not evaluated", skipped, len(pairs))
    else:
        logger.debug("Evaluated %d type pair(s), %d raw finding(s)", checked, len(findings))

    return aggregate(
        findings,
        config,
        cancelled=cancelled,
        types_checked=checked,
        types_skipped=skipped,
    )
