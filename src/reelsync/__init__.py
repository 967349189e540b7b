"""reelsync: keeps video asset records consistent with Mux."""
