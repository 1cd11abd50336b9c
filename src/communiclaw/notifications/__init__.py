"""Write-only fan-out to users (notifications) and to community channels (announcements)."""
