"""Share links: bounded content-addressed persistence of session snapshots."""
