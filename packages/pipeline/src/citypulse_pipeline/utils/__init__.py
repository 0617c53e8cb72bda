"""
citypulse_pipeline.utils — logging setup, retry, tier resolution, in-flight de-duplication.
"""
