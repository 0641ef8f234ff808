"""invcols -- user-defined and computed columns for product inventory lists."""

__version__ = "0.3.0"
__core_api_version__ = 1
