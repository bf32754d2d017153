"""Conversational WhatsApp bot: validators, flows and the message dispatcher.

Import the dispatcher from :mod:`src.bot.dispatcher`; this package does not
re-export it so that :mod:`src.services` can use :mod:`src.bot.formatting`
without an import cycle.
"""
