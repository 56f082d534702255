"""Core modules for the TUID recognition backend (config, logging, errors, utils)."""
