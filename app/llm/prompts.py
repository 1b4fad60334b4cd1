"""
LLM prompts for the pipeline stages.
Every system prompt pins the reply to a single JSON object.
"""
import json
from typing import Any

JSON_ONLY = "Output ONLY valid JSON matching the schema below - no markdown, no explanations."

ANALYZE_SYSTEM_PROMPT = f"""You are a senior software architect. Analyze a build request.

{JSON_ONLY}

OUTPUT SCHEMA:
{{
  "objectives": ["what must be built"],
  "requirements": ["functional or technical requirements"],
  "constraints": ["limits to respect"],
  "technologies": ["suggested languages, frameworks, tools"]
}}"""


PLAN_SYSTEM_PROMPT = f"""You are a build planner. Turn an analysis into ordered build steps.

{JSON_ONLY}

Each step has an integer "order" (execution sequence), a "type" and a short "description".
Step types and their fields:
- "file": "path" (relative to the project root), "content" (full file text)
- "command": "commands" (list of shell commands)
- "dependency": "packages" (list of package names), "manager" ("npm" or "pip")
- "test": "commands" (list of test commands)
- "deploy": "commands" (list of shell commands), optional "target"

OUTPUT SCHEMA:
{{
  "steps": [
    {{"order": 1, "type": "file", "description": "...", "path": "src/index.js", "content": "..."}}
  ]
}}

Never include secrets, API keys or passwords."""


FIX_SYSTEM_PROMPT = f"""You are a debugging expert. Analyze the test failure and provide a specific fix.

{JSON_ONLY}

OUTPUT SCHEMA:
{{
  "description": "what the issue is",
  "type": "code_fix" | "dependency_fix" | "config_fix" | "test_fix",
  "files": [{{"path": "relative/path", "content": "full new file content"}}],
  "commands": ["shell commands to run"],
  "explanation": "why this fix should work"
}}

Be specific and actionable. Focus on the root cause of the failure."""


SUMMARY_SYSTEM_PROMPT = f"""You are a project manager. Summarize a development pipeline execution.

{JSON_ONLY}

OUTPUT SCHEMA:
{{
  "overall_status": "success" | "partial_success" | "failed",
  "summary": "brief overview of what was accomplished",
  "key_achievements": ["..."],
  "issues_encountered": ["..."],
  "fixes_applied": ["..."],
  "recommendations": ["..."],
  "metrics": {{}},
  "deployment_status": "..."
}}"""


def get_analyze_prompt(prompt: str) -> str:
    return f"""Analyze this build request:

REQUEST: {prompt}

Respond with ONLY the JSON object, nothing else."""


def get_plan_prompt(prompt: str, analysis: dict[str, Any]) -> str:
    return f"""Create a build plan.

ORIGINAL REQUEST: {prompt}

ANALYSIS:
{json.dumps(analysis, indent=2)}

Respond with ONLY the JSON plan, nothing else."""


def get_fix_prompt(name: str, suite_type: str, output: str, error: str) -> str:
    # Tail of the output is where test runners print failures
    return f"""Test: {name}
Type: {suite_type}
Output: {output[-4000:]}
Error: {error or "None"}

Please provide a fix for this test failure."""


def get_summary_prompt(prompt: str, logs: list[str], fixed: bool, fix_count: int, fix_summary: str) -> str:
    log_text = "\n".join(logs)
    return f"""Pipeline Execution Summary Request:

Original Prompt: {prompt}

Execution Logs:
{log_text}

Fix Results:
- Fixed: {fixed}
- Fixes Attempted: {fix_count}
- Fix Summary: {fix_summary}

Please provide a comprehensive summary of this pipeline execution."""
