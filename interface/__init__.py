"""
Interface package: communication protocols spoken to the chess engine.

Modules:
    uci — Universal Chess Interface (UCI) wire codec, client side.
          Builds command lines and parses engine output lines.
"""
