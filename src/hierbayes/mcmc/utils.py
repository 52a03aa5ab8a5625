from ..prior_config import DEFAULT_PRIORS
from .compile import DEFAULT_CHUNK_SIZE


def clean_config(sampler_config):
    """
    Cleans the config and sets defaults.
    All config keys use lowercase with underscores.
    """
    sampler_config = dict(sampler_config)

    # Define Defaults and retrieve values from dictionary (all lowercase)
    sampler_config.setdefault('chains', 4)
    sampler_config.setdefault('iterations', 2000)
    sampler_config.setdefault('warmup', sampler_config['iterations'] // 2)
    sampler_config.setdefault('thin', 1)
    sampler_config.setdefault('seed', 42)
    sampler_config.setdefault('init', 'prior')
    sampler_config.setdefault('chunk_size', DEFAULT_CHUNK_SIZE)
    sampler_config.setdefault('tune_interval', 100)
    sampler_config.setdefault('adapt_step_size', True)
    sampler_config.setdefault('initial_step_size', 0.5)
    sampler_config.setdefault('max_workers', None)
    sampler_config.setdefault('timeout', None)
    sampler_config.setdefault('rhat_threshold', 1.1)
    sampler_config.setdefault('min_ess', 100)
    sampler_config.setdefault('max_lag', 200)

    priors = dict(sampler_config.get('priors') or {})
    for key, value in DEFAULT_PRIORS.items():
        priors.setdefault(key, value)
    sampler_config['priors'] = priors

    return sampler_config
