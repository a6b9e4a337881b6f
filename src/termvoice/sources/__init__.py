"""Source adapters feeding raw events into the narration pipeline."""
