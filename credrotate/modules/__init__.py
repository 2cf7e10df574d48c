"""Black box modules used by the credential rotation workflow."""
