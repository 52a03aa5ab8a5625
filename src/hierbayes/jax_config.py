"""
JAX Configuration - MUST be imported before any other hierbayes module touches JAX.

This module sets environment variables and JAX flags:
- Persistent compilation cache directory
- Minimum compile time threshold for caching
- Double precision (the Gibbs sweep works with scale parameters whose
  log-densities lose too much in float32)
"""
import os
from pathlib import Path

# --- PERSISTENT COMPILATION CACHE ---
# Enables cross-session caching of compiled kernels
_JAX_CACHE_DIR = Path.home() / ".cache" / "jax" / "hierbayes_cache"
_JAX_CACHE_DIR.mkdir(parents=True, exist_ok=True)
os.environ.setdefault("JAX_COMPILATION_CACHE_DIR", str(_JAX_CACHE_DIR))
os.environ.setdefault("JAX_PERSISTENT_CACHE_MIN_COMPILE_TIME_SECS", "1.0")

# --- PRECISION ---
os.environ.setdefault("JAX_ENABLE_X64", "1")

import jax  # noqa: E402

jax.config.update("jax_enable_x64", True)
