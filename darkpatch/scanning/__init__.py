"""Tree scanning and colour math"""
