"""
MCMC Sampling Functions.

Core update steps of the Gibbs sweep:
- sample_group_means: Conjugate Normal-Normal draw of mu[j] | rest
- sample_grand_mean: Conjugate Normal-Normal draw of mu0 | rest
- tau_log_conditional / sigma_log_conditional: Log full conditionals on the log scale
- log_scale_metropolis_step: Random-walk Metropolis step on log(scale)
- full_gibbs_iteration: One sweep over (mu, mu0, tau, sigma)
"""

import jax
import jax.numpy as jnp
import jax.random as random

from ..distributions import normal_logpdf, scale_prior_logpdf
from .types import ChainState


def sample_group_means(key, state: ChainState, stats):
    """
    Conjugate update of every group mean.

    mu[j] | rest ~ Normal(m_j, 1 / p_j) with
        p_j = n_j / sigma_j^2 + 1 / tau^2
        m_j = (sum_j / sigma_j^2 + mu0 / tau^2) / p_j

    Only n_j and the group sum enter, so single-observation groups need no
    variance statistic.
    """
    tau = jnp.exp(state.log_tau)
    sigma = jnp.exp(state.log_sigma)  # (1,) broadcasts over groups when shared

    sigma_sq = sigma ** 2
    prior_precision = 1.0 / tau ** 2
    post_precision = stats.counts / sigma_sq + prior_precision
    post_mean = (stats.sums / sigma_sq + state.mu0 * prior_precision) / post_precision

    draw = post_mean + random.normal(key, shape=post_mean.shape) / jnp.sqrt(post_precision)

    # Safeguard: keep previous values where the draw is not finite
    mu = jnp.where(jnp.isfinite(draw), draw, state.mu)
    return state._replace(mu=mu)


def sample_grand_mean(key, state: ChainState, priors):
    """
    Conjugate update of the grand mean, treating mu[j] as observations of mu0.

    mu0 | rest ~ Normal(m, 1 / p) with
        p = 1 / s0^2 + J / tau^2
        m = (m0 / s0^2 + sum(mu) / tau^2) / p
    """
    tau = jnp.exp(state.log_tau)
    n_groups = state.mu.shape[0]

    prior_precision = 1.0 / priors.mu0_sd ** 2
    post_precision = prior_precision + n_groups / tau ** 2
    post_mean = (priors.mu0_mean * prior_precision + jnp.sum(state.mu) / tau ** 2) / post_precision

    draw = post_mean + random.normal(key, shape=()) / jnp.sqrt(post_precision)

    mu0 = jnp.where(jnp.isfinite(draw), draw, state.mu0)
    return state._replace(mu0=mu0)


def tau_log_conditional(log_tau, state: ChainState, priors, scale_family):
    """
    Log full conditional of u = log(tau), up to a constant.

    sum_j log N(mu_j; mu0, tau) + log p(tau) + u
    The trailing u is the Jacobian of tau = exp(u).
    """
    tau = jnp.exp(log_tau)
    log_lik = jnp.sum(normal_logpdf(state.mu, state.mu0, tau))
    log_prior = scale_prior_logpdf(tau, scale_family, priors.tau_scale, priors.gamma_shape)
    return log_lik + log_prior + log_tau


def sigma_log_conditional(log_sigma, state: ChainState, stats, priors, scale_family, shared_sigma):
    """
    Log full conditional of v = log(sigma), up to a constant, one entry per sigma.

    Group residual sums of squares use the centered decomposition
        sum_i (y_ij - mu_j)^2 = ss_j + n_j (ybar_j - mu_j)^2

    Returns:
        (1,) array for shared sigma, (n_groups,) otherwise. Entries are
        independent given mu, so per-group sigmas can be accepted separately.
    """
    sigma = jnp.exp(log_sigma)
    sigma_b = jnp.broadcast_to(sigma, stats.counts.shape)
    log_sigma_b = jnp.broadcast_to(log_sigma, stats.counts.shape)

    rss = stats.within_ss + stats.counts * (stats.means - state.mu) ** 2
    group_log_lik = -stats.counts * log_sigma_b - rss / (2.0 * sigma_b ** 2)

    if shared_sigma:
        log_lik = jnp.sum(group_log_lik, keepdims=True)
    else:
        log_lik = group_log_lik

    log_prior = scale_prior_logpdf(sigma, scale_family, priors.sigma_scale, priors.gamma_shape)
    return log_lik + log_prior + log_sigma


def log_scale_metropolis_step(key, current, step_size, log_target_fn):
    """
    Symmetric random-walk Metropolis step on log(scale).

    Proposals whose log target is not finite, or whose scale exp(proposal)
    under/overflows, are rejected unconditionally.

    Args:
        key: JAX random key
        current: Current log-scale value(s); scalar or vector
        step_size: Proposal standard deviation on the log scale
        log_target_fn: Maps log-scale values to log densities of the same shape

    Returns:
        new_value, accepted (bool, same shape as current)
    """
    proposal_key, accept_key = random.split(key)
    proposal = current + step_size * random.normal(proposal_key, shape=jnp.shape(current))

    lp_current = log_target_fn(current)
    lp_proposed = log_target_fn(proposal)

    scale_proposed = jnp.exp(proposal)
    proposal_is_valid = (
        jnp.isfinite(lp_proposed)
        & jnp.isfinite(scale_proposed)
        & (scale_proposed > 0)
    )

    safe_lp_current = jnp.nan_to_num(lp_current, nan=-jnp.inf, posinf=-jnp.inf)
    log_ratio = jnp.where(proposal_is_valid, lp_proposed - safe_lp_current, -jnp.inf)

    log_uniform = jnp.log(random.uniform(accept_key, shape=jnp.shape(current)))
    accept = log_uniform < log_ratio

    new_value = jnp.where(accept, proposal, current)
    return new_value, accept


def full_gibbs_iteration(key, state: ChainState, step_sizes, stats, priors, run_params):
    """
    Run one full Gibbs sweep: mu | rest, mu0 | rest, tau | rest, sigma | rest.

    Args:
        key: JAX random key (consumed)
        state: Current ChainState
        step_sizes: (2,) log-scale proposal sds for (tau, sigma)
        stats: GroupStats of the model
        priors: PriorParams
        run_params: RunParams (static)

    Returns:
        new_state, accepts: (2,) acceptance indicators for (tau, sigma); the
        sigma entry is the accepted fraction when sigma is per-group
    """
    mu_key, mu0_key, tau_key, sigma_key = random.split(key, 4)

    state = sample_group_means(mu_key, state, stats)
    state = sample_grand_mean(mu0_key, state, priors)

    def tau_target(log_tau):
        return tau_log_conditional(log_tau, state, priors, run_params.SCALE_FAMILY)

    log_tau, tau_accept = log_scale_metropolis_step(
        tau_key, state.log_tau, step_sizes[0], tau_target
    )
    state = state._replace(log_tau=log_tau)

    def sigma_target(log_sigma):
        return sigma_log_conditional(
            log_sigma, state, stats, priors, run_params.SCALE_FAMILY, run_params.SHARED_SIGMA
        )

    log_sigma, sigma_accept = log_scale_metropolis_step(
        sigma_key, state.log_sigma, step_sizes[1], sigma_target
    )
    state = state._replace(log_sigma=log_sigma)

    accepts = jnp.stack([
        tau_accept.astype(jnp.float64),
        jnp.mean(sigma_accept.astype(jnp.float64)),
    ])
    return state, accepts


def parallel_gibbs_iteration(keys, states: ChainState, step_sizes, stats, priors, run_params):
    """
    Vmapped sweep for a batch of chains sharing one model.

    Used by tests and quick checks; the chain manager runs chains as
    independent workers instead.
    """
    sweep = jax.vmap(
        lambda k, s, st: full_gibbs_iteration(k, s, st, stats, priors, run_params)
    )
    return sweep(keys, states, step_sizes)
