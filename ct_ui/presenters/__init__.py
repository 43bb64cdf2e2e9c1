"""Rich renderers for run results."""
