"""Learning loop: knowledge stores, recall, enrichment and feedback."""
