"""
Prospect enrichment and qualification pipeline.

Runs research passes against external providers, records every attempt,
scores the merged results, and moves prospects through the sales pipeline.
"""
