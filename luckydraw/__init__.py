"""Lucky draw event core: participants, prizes and winner selection."""
