"""PC/SP design audit: component discovery, consistency checks and guideline scoring."""
