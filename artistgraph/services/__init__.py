"""Domain services: name resolution, parsing, quotas, enrichment and graph writes."""
