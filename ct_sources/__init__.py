"""Repository acquisition and participant builds."""
