"""Wire encodings for exported rows."""
