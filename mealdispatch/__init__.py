"""Weekly meal plan email dispatch service."""
