"""Just enough of the Minecraft protocol to ask a server for its status."""
