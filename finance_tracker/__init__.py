"""Command-line front-end for the finance tracker."""
