#!/usr/bin/env python3
"""
Resilience patterns example.

This example wires the orchestration layer around an annotation service:
- Readiness probes and bounded recovery
- Adaptive rate limiting
- Cached, tiered fallback down to the static pattern heuristic

Usage:
    export HINTFLOW_COMPLETION_URL="https://hints.example.com"
    export HINTFLOW_COMPLETION_API_KEY="your-api-key"
    python examples/resilience.py
"""

import asyncio
import json
import os

from hintflow import (
    AnnotationRequest,
    HintService,
    HttpAnnotationSource,
    HttpReadinessProbe,
    OrchestrationContext,
    PatternHeuristic,
    ServiceId,
    load_settings,
)
from hintflow.errors import InitializationError

COMPLETION_URL = os.getenv("HINTFLOW_COMPLETION_URL", "http://localhost:8080")
COMPLETION_KEY = os.getenv("HINTFLOW_COMPLETION_API_KEY")

SAMPLE = """\
function total(items) {
  if (!items.length) {
    return 0;
  }
  try {
    return items.reduce((sum, item) => sum + item.price, 0);
  } catch (error) {
    throw error;
  }
}
"""


async def main() -> None:
    settings = load_settings()
    settings.configure_logging()

    probe = HttpReadinessProbe(
        ServiceId.COMPLETION, f"{COMPLETION_URL}/health", api_key=COMPLETION_KEY
    )
    source = HttpAnnotationSource(ServiceId.COMPLETION, COMPLETION_URL, api_key=COMPLETION_KEY)

    async with OrchestrationContext(settings) as ctx, probe, source:
        ctx.register_dependency(ServiceId.COMPLETION, probe)
        try:
            await ctx.initialize()
        except InitializationError as e:
            # Without the dependency only the static tier can serve
            print(f"Startup failed, serving static hints only: {e}")
            chain = ctx.fallback_chain(static=PatternHeuristic())
            result = await chain.execute(AnnotationRequest(code=SAMPLE))
            for annotation in result.annotations:
                print(f"line {annotation.span.line:>2} [{annotation.tier}] {annotation.title}")
            return

        hints = HintService(ctx, ctx.fallback_chain(primary=source, static=PatternHeuristic()))

        for _ in range(2):
            annotations = await hints.analyze(SAMPLE)
            for annotation in annotations:
                print(f"line {annotation.span.line:>2} [{annotation.tier}] {annotation.title}")
            print()

        print("Status:")
        print(json.dumps(ctx.status_report().to_dict(), indent=2, default=str))


if __name__ == "__main__":
    asyncio.run(main())
