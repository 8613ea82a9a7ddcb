"""Calendar source models, ICS parsing, fetching and export."""
