"""REST API for HabitFlow"""
