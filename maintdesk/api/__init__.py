"""HTTP surface of the maintenance desk."""
