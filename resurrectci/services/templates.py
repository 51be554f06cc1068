# Copyright (c) 2025 Parth Sinha and Shine Gupta. All rights reserved.
# ResurrectCI - Autonomous AI agent that detects, analyzes, and resolves deployment failures in real-time.

"""
Text templates for generated files, pull requests and degraded analyses.
"""

import json
import re
from typing import Any, Dict

from resurrectci.core.models import Deployment, FixStrategy

DEFAULT_MANIFEST: Dict[str, Any] = {
    "name": "resurrect-code",
    "private": True,
    "version": "0.0.0",
    "type": "module",
    "scripts": {
        "dev": "vite",
        "build": "tsc && vite build",
        "lint": "eslint . --ext ts,tsx --report-unused-disable-directives --max-warnings 0",
        "preview": "vite preview",
    },
    "dependencies": {
        "react": "^18.2.0",
        "react-dom": "^18.2.0",
    },
    "devDependencies": {
        "@types/react": "^18.2.66",
        "@types/react-dom": "^18.2.22",
        "@vitejs/plugin-react": "^4.2.1",
        "eslint": "^8.57.0",
        "typescript": "^5.2.2",
        "vite": "^5.2.0",
    },
}

DEFAULT_SCRIPTS = {
    "build": "vite build",
    "dev": "vite",
    "start": "vite preview",
    "preview": "vite preview",
    "test": "vitest run",
    "lint": "eslint .",
}

COMPONENT_TEMPLATE = """import React from 'react';

interface {name}Props {{
  // Add props here
}}

export function {name}({{}}: {name}Props) {{
  return (
    <div className="p-4">
      <h2 className="text-xl font-semibold">{name}</h2>
      <p className="text-gray-600">
        This component was automatically generated to fix a build error.
        Please update it with your actual implementation.
      </p>
    </div>
  );
}}

export default {name};
"""

FALLBACK_SOURCE_TEMPLATE = """// This file was automatically fixed by ResurrectCI
// Please review and update as needed

export default function AutoFixed() {
  return <div>Auto-fixed component</div>;
}
"""

RATE_LIMITED_ANALYSIS = """⚠️ Rate Limit Exceeded

The AI provider is currently rate limited, so this fix was chosen from known
error patterns only. Review the change carefully before merging."""

UNAVAILABLE_ANALYSIS = """⚠️ AI analysis unavailable ({reason})

This fix was chosen from known error patterns only. Review the change
carefully before merging."""

PR_BODY_TEMPLATE = """## 🤖 Automated Fix by ResurrectCI

**Deployment Failed:** {name} ({environment})
**Branch:** {branch}
**Fix Type:** {fix_type}

### What was fixed:
{description}

### Root cause:
{root_cause}

### Changes made:
{changes}

### How it works:
1. 🔍 **Error Detection**: Deployment failure was automatically detected
2. 🤖 **AI Analysis**: The error was analyzed and a fix strategy was chosen
3. 🔄 **Workflow**: The ResurrectCI workflow was triggered for automated fixing
4. 📝 **Code Generation**: Fix was automatically generated and applied
5. 🚀 **PR Creation**: This PR was created for review and testing

### Next Steps:
- ✅ Review the changes
- 🧪 Wait for CI/CD checks to pass
- 🚀 Auto-merge will happen if checks pass
- 🔄 New deployment will be triggered automatically

---
*This PR was created automatically by ResurrectCI.*

**CodeRabbit Analysis:** This PR will be automatically analyzed by CodeRabbit for code quality and best practices.
"""


def pascal_case(name: str) -> str:
    parts = [p for p in re.split(r"[-_\s.]+", name) if p]
    return "".join(p[0].upper() + p[1:] for p in parts) or "Component"


def component_template(module_path: str) -> str:
    """Stub React component named after the last segment of `module_path`."""
    base = module_path.rstrip("/").split("/")[-1]
    base = re.sub(r"\.[^/.]+$", "", base)
    return COMPONENT_TEMPLATE.format(name=pascal_case(base))


def default_manifest() -> Dict[str, Any]:
    return json.loads(json.dumps(DEFAULT_MANIFEST))


def render_manifest(manifest: Dict[str, Any]) -> str:
    return json.dumps(manifest, indent=2) + "\n"


def fix_type_label(strategy: FixStrategy) -> str:
    return strategy.type.value.replace("_", " ")


def pr_title(strategy: FixStrategy) -> str:
    return f"🤖 ResurrectCI: Automated fix for {fix_type_label(strategy)}"


def pr_body(deployment: Deployment, strategy: FixStrategy) -> str:
    changes = "\n".join(
        f"- {change.action.value.upper()}: `{change.path}`" for change in strategy.changes
    )
    return PR_BODY_TEMPLATE.format(
        name=deployment.name,
        environment=deployment.environment.value,
        branch=deployment.branch,
        fix_type=fix_type_label(strategy),
        description=strategy.description,
        root_cause=strategy.root_cause or "Not available",
        changes=changes,
    )
