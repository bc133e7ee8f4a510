"""Agent commerce demo: a paid weather API, a paying agent and a local facilitator."""
