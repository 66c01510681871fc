"""
dividend_advisor.reporting — result serialisation and CLI text rendering.

Modules:
  envelope   — ``{status, recommendation | error}`` transport envelope.
  formatters — plain-text renderers for ``typer.echo()``.
"""
