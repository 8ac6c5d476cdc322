"""Gas-escalating transaction submission for EVM chains."""
