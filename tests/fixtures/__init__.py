"""
Test Fixtures - Shared Test Stages.

This package contains reusable test helpers:
    - stages.py: Stages that record calls, fail, block or report failure

Usage:
    from tests.fixtures.stages import RecordingStage, TransientStage
"""
