"""Test suite for training control"""
