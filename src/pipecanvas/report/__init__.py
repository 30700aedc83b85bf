"""PipeCanvas — relatórios derivados do Manifest da run."""
