"""
Roadmap Pipeline: readiness assessments in, validated four-phase roadmaps out.

A sequential six-stage pipeline (collect, score, prompt, generate, validate,
finalize) with per-stage validation gates, bounded retry on the generation
call, a fallback plan for unusable output and an idempotent assessment write.
"""

__version__ = "1.0.0"
