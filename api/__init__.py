"""Flask front-end for the finance tracker."""
