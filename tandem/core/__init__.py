"""
Shared foundations for Tandem: settings, events, session context, Model
Gateway client, workspace inspector, file and process host helpers, prompts.
"""
