# Copyright (c) 2025 Parth Sinha and Shine Gupta. All rights reserved.
# ResurrectCI - Autonomous AI agent that detects, analyzes, and resolves deployment failures in real-time.

from typing import Any, Dict, List

SYSTEM_PROMPT = """You are an expert frontend build engineer who fixes failed deployments.
You know npm, yarn and pnpm, Vite, Next.js, TypeScript and React build tooling.
Answer with a single JSON object and nothing else."""

ANALYSIS_PROMPT = """Analyze this deployment error and provide a specific fix:

ERROR: {error_text}

BUILD LOGS:
{build_logs}

PROJECT: {project}
ENVIRONMENT: {environment}
BRANCH: {branch}

Please provide:
1. Root cause analysis
2. Specific fix with code examples
3. Prevention steps for future deployments

Format your response as JSON with fields: analysis, fix, prevention"""

MAX_LOG_LINES = 50


def build_analysis_prompt(
    error_text: str,
    log_lines: List[str],
    metadata: Dict[str, Any],
) -> str:
    """
    Build the analysis prompt.

    Only the last MAX_LOG_LINES log lines are included.
    """
    lines = log_lines[-MAX_LOG_LINES:]
    return ANALYSIS_PROMPT.format(
        error_text=error_text,
        build_logs="\n".join(lines) if lines else "(no build logs captured)",
        project=metadata.get("name", "unknown"),
        environment=metadata.get("environment", "unknown"),
        branch=metadata.get("branch", "unknown"),
    )
