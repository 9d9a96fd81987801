"""Registry, planner, dispatcher and assembler of the table function runtime."""
