def load_env_file() -> bool:
    """Load environment variables from a local .env file without overwriting.

    WHAT:
        Copies variables from .env into os.environ, keeping values that are
        already exported.
    WHY:
        Developers point the compiler at a replica of the tools database
        through .env; production exports the variables directly.

    Returns:
        True when a .env file was found and read.
    """
    import logging
    from dotenv import load_dotenv

    logger = logging.getLogger(__name__)

    loaded = load_dotenv(override=False)

    if loaded:
        logger.info("[CONFIG] Loaded local .env file (existing variables were NOT overwritten)")
    else:
        logger.debug("[CONFIG] No local .env file found")
    return loaded
