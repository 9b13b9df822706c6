class RuntimeConfig:
    """
    Singleton class to hold global runtime configurations.
    """
    # Verbose by default
    VERBOSE: bool = True
    CONFIG_FILE: str = "hostsync_config.yaml"
    NORNIR_CONFIG: str = "config.yaml"


config = RuntimeConfig()
