"""
Distribution Primitives

Log-densities and samplers for the priors of the hierarchical normal model:

- Normal: grand mean prior and group-mean likelihood
- Half-Cauchy: default prior for the scale parameters tau and sigma
- Gamma: alternative scale prior (shape, scale parameterisation)

All log-densities are evaluated in log space. Scale log-densities return -inf
for non-positive arguments, so a non-positive scale can never be accepted by a
Metropolis step. Samplers take an explicit JAX PRNG key and are deterministic
given that key.
"""

import jax.numpy as jnp
import jax.random as random
import jax.scipy.stats as stats


LOG_2 = jnp.log(2.0)


# ============================================================================
# NORMAL
# ============================================================================

def normal_logpdf(x, loc, scale):
    """Normal log-density; -inf when scale is not strictly positive."""
    lp = stats.norm.logpdf(x, loc=loc, scale=scale)
    return jnp.where(scale > 0, lp, -jnp.inf)


def normal_sample(key, loc, scale, shape=()):
    """Draw from Normal(loc, scale^2)."""
    return loc + scale * random.normal(key, shape=shape)


# ============================================================================
# HALF-CAUCHY
# ============================================================================

def half_cauchy_logpdf(x, scale):
    """
    Half-Cauchy log-density on (0, inf).

    p(x) = 2 / (pi * scale * (1 + (x/scale)^2)) for x > 0
    """
    lp = LOG_2 + stats.cauchy.logpdf(x, loc=0.0, scale=scale)
    return jnp.where(x > 0, lp, -jnp.inf)


def half_cauchy_sample(key, scale, shape=()):
    """
    Inverse-CDF draw from a half-Cauchy.

    F^{-1}(u) = scale * tan(pi * u / 2). u is drawn from the open interval
    (tiny, 1) so the result is always strictly positive and finite.
    """
    tiny = jnp.finfo(jnp.result_type(float)).tiny
    u = random.uniform(key, shape=shape, minval=tiny, maxval=1.0)
    return scale * jnp.tan(0.5 * jnp.pi * u)


# ============================================================================
# GAMMA
# ============================================================================

def gamma_logpdf(x, shape, scale):
    """Gamma(shape, scale) log-density on (0, inf)."""
    lp = stats.gamma.logpdf(x, shape, scale=scale)
    return jnp.where(x > 0, lp, -jnp.inf)


def gamma_sample(key, shape, scale, size=()):
    """Draw from Gamma(shape, scale); rejects exact zeros by flooring at tiny."""
    draw = random.gamma(key, shape, shape=size) * scale
    tiny = jnp.finfo(draw.dtype).tiny
    return jnp.maximum(draw, tiny)


# ============================================================================
# SCALE PRIOR DISPATCH
# ============================================================================

def scale_prior_logpdf(x, family, scale, gamma_shape=2.0):
    """
    Log-density of the configured scale prior.

    Args:
        x: Scale value(s)
        family: 'half_cauchy' or 'gamma' (static, resolved at trace time)
        scale: Prior scale
        gamma_shape: Shape parameter, only used by the gamma family
    """
    if family == 'half_cauchy':
        return half_cauchy_logpdf(x, scale)
    if family == 'gamma':
        return gamma_logpdf(x, gamma_shape, scale)
    raise ValueError(f"Unknown scale prior family: '{family}'")


def scale_prior_sample(key, family, scale, gamma_shape=2.0, shape=()):
    """Draw from the configured scale prior."""
    if family == 'half_cauchy':
        return half_cauchy_sample(key, scale, shape=shape)
    if family == 'gamma':
        return gamma_sample(key, gamma_shape, scale, size=shape)
    raise ValueError(f"Unknown scale prior family: '{family}'")
