"""Background worker threads for Palm Annotator."""
