"""Entry point for `python -m nanobook`.

Delegates to `python -m nanobook.pipeline`, which runs the full pipeline.
"""
import runpy
runpy.run_module("nanobook.pipeline", run_name="__main__", alter_sys=True)
